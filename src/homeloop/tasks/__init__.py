"""
Task subsystem.

Components:
- task_models.py: data structures (RecurrenceRule, ScheduleRecord, TaskInstance)
- recurrence.py: pure "is this schedule due on this date" predicates
- schedule_store.py / task_store.py: SQLite-backed storage
- task_generator.py: TaskRecurrenceRunner (daily generation + startup catch-up)
"""
