"""
Scheduling Domain

Recurring clinical schedules (injections, tests, follow-ups) and the
calendar view built from them.

Structure:
```
carecycle/domain/scheduling/
├── __init__.py
├── errors.py       # Domain errors, mapped to HTTP in main.py
├── recurrence.py   # Interval validation, next-due computation, classification
├── visibility.py   # Role/tenant access rules + bulk query predicate
├── state.py        # Status workflow, resume strategies
├── repository.py   # Schedule/execution queries
├── projector.py    # Calendar instances for a date window
├── automation.py   # Auto-hold of long-overdue schedules (worker cron)
├── service.py      # Write paths: create, complete, skip, pause, resume
├── schemas.py      # Request/response models
└── router.py       # /schedules endpoints
```

Write paths recompute ``next_due_date`` through recurrence.py only, and every
read or write is checked against visibility.py before touching a record.
"""
