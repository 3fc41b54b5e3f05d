"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from timeclock.api.v1.endpoints import jobs, schedules, settings, time_sessions, timesheet

api_router = APIRouter()

# Clock-in/out, team switch, breaks
api_router.include_router(time_sessions.router)

# Timesheet and adjustments
api_router.include_router(timesheet.router)

# Weekly schedules (team managers, admins)
api_router.include_router(schedules.router)

# Organisation thresholds (admin)
api_router.include_router(settings.router)

# Cron triggers and notification feed
api_router.include_router(jobs.router)
