"""Parallel artifact downloads with aggregated failure reporting."""

import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from ..core.enums import Component, TaskOutcome
from ..core.log import Logger, get_logger, log_context
from ..core.types import FetchResult, TaskResult, TimeoutConfig
from ..utils.output import print_status
from .fetchers import ArtifactFetcher
from .retry import RetryExecutor


@dataclass
class DownloadTask:
    """One in-flight fetch: the component, where its artifact lands and its future."""

    component: Component
    artifact: str
    future: Optional[Future] = None
    result: TaskResult = field(init=False)

    def __post_init__(self) -> None:
        self.result = TaskResult(component=self.component, artifact=self.artifact)

    @property
    def running(self) -> bool:
        return self.future is not None and not self.future.done()


class DownloadCoordinator:
    """Fans out one fetch task per component and fans the outcomes back in.

    Every task is dispatched before any is awaited. The coordinator then
    polls liveness on a fixed interval, reporting how many tasks remain, and
    finally checks every task. A single failure fails the batch.
    """

    def __init__(
        self,
        fetcher: ArtifactFetcher,
        retry_executor: Optional[RetryExecutor] = None,
        timeouts: Optional[TimeoutConfig] = None,
        logger: Optional[Logger] = None,
        progress: Callable[[str], None] = print_status,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._fetcher = fetcher
        self._retry = retry_executor or RetryExecutor()
        self._timeouts = timeouts or TimeoutConfig()
        self._logger = logger or get_logger(__name__)
        self._progress = progress
        self._sleep = sleep

    @property
    def fetcher(self) -> ArtifactFetcher:
        return self._fetcher

    def _fetch_one(self, component: Component) -> bool:
        with log_context(component=component.value):
            return self._retry.run(
                lambda: self._fetcher.fetch(component),
                description=f"fetch {component.value}",
            )

    def fetch_all(self, components: Sequence[Component]) -> FetchResult:
        """Fetch every component's artifact concurrently.

        Returns:
            FetchResult naming the components that succeeded and failed
        """
        components = list(components)
        if not components:
            return FetchResult()

        tasks: List[DownloadTask] = [
            DownloadTask(component=c, artifact=self._fetcher.artifact_location(c))
            for c in components
        ]
        self._logger.info("Starting %d parallel download(s)", len(tasks))

        with ThreadPoolExecutor(
            max_workers=len(tasks), thread_name_prefix="download"
        ) as executor:
            for task in tasks:
                task.future = executor.submit(self._fetch_one, task.component)

            remaining = self._count_running(tasks)
            while remaining:
                self._progress(f"Downloads in progress: {remaining} remaining")
                self._sleep(self._timeouts.download_poll_interval)
                remaining = self._count_running(tasks)

            return self._aggregate(tasks)

    @staticmethod
    def _count_running(tasks: Sequence[DownloadTask]) -> int:
        return sum(1 for task in tasks if task.running)

    def _aggregate(self, tasks: Sequence[DownloadTask]) -> FetchResult:
        result = FetchResult()
        errors: Dict[str, str] = {}
        for task in tasks:
            try:
                ok = task.future.result()
                error = None if ok else "fetch did not succeed"
            except Exception as e:  # pylint: disable=broad-except
                # Any task failure is reported by component, not raised
                ok = False
                error = str(e) or type(e).__name__
                self._logger.debug("Download task for %s raised", task.component.value, exc_info=True)

            task.result.outcome = TaskOutcome.SUCCEEDED if ok else TaskOutcome.FAILED
            task.result.error_message = error
            if ok:
                result.succeeded.append(task.component)
            else:
                result.failed.append(task.component)
                errors[task.component.value] = error or "unknown error"
                self._logger.error("%s download failed: %s", task.component.value, error)

        result.errors = errors
        if result.ok:
            self._logger.info("All downloads completed successfully")
        return result
