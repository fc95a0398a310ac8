"""
Base task class for long-running background jobs
"""
import logging

from celery import Task

logger = logging.getLogger("system.tasks")


class BaseTask(Task):
    """
    Task with progress reporting.

    Progress is written to the task log and, when the task runs under a
    worker, to the result backend as a PROGRESS state.
    """

    abstract = True

    progress = 0
    message = ""

    def log_progress(self, message, progress=None):
        if progress is not None:
            self.progress = max(0, min(100, int(progress)))

        self.message = message

        bar_length = 20
        filled = int(bar_length * self.progress / 100)
        bar = "█" * filled + "░" * (bar_length - filled)

        logger.info(f"[{bar}] {self.progress:3d}% - {message}")

        if self.request.id and not self.request.is_eager:
            self.update_state(
                state="PROGRESS",
                meta={"progress": self.progress, "message": message},
            )
