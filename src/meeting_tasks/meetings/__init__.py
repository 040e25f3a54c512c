"""Meeting data layer -- schemas, SQLAlchemy models, and MeetingRepository.

Covers meetings, tasks, Zoom recordings and tokens, extraction runs, and
the pipeline audit log.
"""
