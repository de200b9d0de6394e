import logging
from concurrent.futures import ThreadPoolExecutor
from typing import NamedTuple, Sequence

from ..model.values import Row
from .config import config
from .join import Derivation, evaluate_rule
from .program import CompiledRule
from .relation import IndexedRelation

logger = logging.getLogger(__name__)


class Task(NamedTuple):
    """
    One rule evaluation of a round.

      - rule: the CompiledRule to join
      - sources: the relation each body position reads (full or delta)
      - driver_rows: rows driving body position 0 instead of sources[0]
    """
    rule: CompiledRule
    sources: tuple[IndexedRelation | None, ...]
    driver_rows: Sequence[Row] | None = None


def run_task(task: Task, with_premises: bool) -> list[Derivation]:
    return evaluate_rule(
        task.rule,
        task.sources,
        driver_rows=task.driver_rows,
        with_premises=with_premises,
    )


class ParallelScheduler:
    """
    Runs the tasks of one evaluation round on a fixed thread pool.

    Tasks only read relations; each returns its own list of derivations, and
    `run` returns once every task has finished, leaving the merge to the
    caller. A round holding a single task whose driving relation is larger
    than `row_batch_size` is split into row batches over body position 0.
    With `parallel` off or at most one worker everything runs inline.
    """

    def __init__(
        self,
        workers: int | None = None,
        parallel: bool | None = None,
        row_batch_size: int | None = None,
    ) -> None:
        self.workers = workers if workers is not None else config.get('engine.workers', 1)
        self.parallel = parallel if parallel is not None else config.get('engine.parallel', True)
        self.row_batch_size = max(1, row_batch_size if row_batch_size is not None
                                  else config.get('engine.row_batch_size', 2048))
        self._pool: ThreadPoolExecutor | None = None

    @property
    def inline(self) -> bool:
        return not self.parallel or self.workers <= 1

    def _executor(self) -> ThreadPoolExecutor:
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="kgreason")
        return self._pool

    def split(self, tasks: list[Task]) -> list[Task]:
        """Split a lone task into row batches over its first body position."""
        if self.inline or len(tasks) != 1:
            return tasks
        task = tasks[0]
        if not task.rule.body:
            return tasks
        if task.driver_rows is not None:
            rows = list(task.driver_rows)
        elif task.sources[0] is not None:
            rows = task.sources[0].scan()
        else:
            return tasks
        if len(rows) <= self.row_batch_size:
            return tasks
        size = self.row_batch_size
        batches = [
            task._replace(driver_rows=rows[i:i + size])
            for i in range(0, len(rows), size)
        ]
        logger.debug(f"[SCHED] {task.rule!r}: {len(rows)} driving rows in {len(batches)} batches")
        return batches

    def run(self, tasks: list[Task], with_premises: bool = False) -> list[list[Derivation]]:
        """
        Evaluate `tasks` and return one result list per task, in task order.
        Results of the batches of a split task are concatenated.
        """
        batches = self.split(tasks)
        if self.inline or len(batches) <= 1:
            results = [run_task(t, with_premises) for t in batches]
        else:
            pool = self._executor()
            futures = [pool.submit(run_task, t, with_premises) for t in batches]
            logger.debug(f"[SCHED] {len(futures)} task(s) on {self.workers} worker(s)")
            # barrier: every worker finishes before the caller merges
            results = [f.result() for f in futures]
        if len(batches) != len(tasks):
            return [[d for part in results for d in part]]
        return results

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def __enter__(self) -> 'ParallelScheduler':
        return self

    def __exit__(self, *exc) -> None:
        self.close()
