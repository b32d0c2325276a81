"""
LifeSync - Source Package

Client-side reactive synchronization layer of a personal
life-management app (tasks, calendar, goals, habits, notes, health,
finance) backed by a managed, owner-scoped data service.

DESIGN PRINCIPLES:
1. The remote service is the source of truth
2. Local writes are provisional until a push confirms them
3. Failures are outcomes, never silent
4. Every collaborator is injected
"""

__version__ = "1.0.0"
__author__ = "LifeSync Team"
