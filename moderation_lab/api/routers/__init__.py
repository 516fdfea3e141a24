"""HTTP routers: student queue, student history, teacher dashboard, health."""
from __future__ import annotations

from typing import List

from fastapi import APIRouter


def all_routers() -> List[APIRouter]:
    """Routers in mount order.

    Imported on call so that ``moderation_lab.api.main`` can be imported
    without pulling in every route module.
    """
    from . import admin, health, queue, students

    return [health.router, queue.router, students.router, admin.router]
