"""novelday package."""

__all__ = [
    "config",
    "db",
    "models",
    "schemas",
    "calendar_window",
    "style",
    "prompts",
    "extractor",
    "generation",
    "datastore",
    "task_queue",
    "dispatcher",
    "scheduler",
    "triggers",
    "task_worker",
]
