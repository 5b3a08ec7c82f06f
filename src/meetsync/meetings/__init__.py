"""Meeting data layer -- Pydantic schemas, SQLAlchemy models, and MeetingRepository.

Holds the reconciled store that downstream consumers (summaries,
reports, UI) read from.
"""
