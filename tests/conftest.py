"""
Pytest configuration and shared fixtures.

Database-backed tests run against a fresh SQLite file per test, created
from the ORM metadata. Repositories and services resolve the database
lazily, so installing it with set_database() is enough.
"""

from dataclasses import dataclass, field
from typing import List

import pytest
import pytest_asyncio

from mentorflow.database import Database, set_database
from mentorflow.database.models import BuddyDB, CurriculumDB, BuddyCurriculumDB, TaskAssignmentDB
from mentorflow.database.repositories import get_assignment_repository, get_user_repository
from mentorflow.models.actor import Actor
from mentorflow.services import (
    get_buddy_service,
    get_content_service,
    get_enrollment_service,
)

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


@pytest_asyncio.fixture
async def database(tmp_path):
    """Fresh SQLite database installed as the process-wide singleton."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'mentorflow.db'}")
    assert await db.initialize()
    set_database(db)
    yield db
    await db.close()
    set_database(None)


@dataclass
class People:
    """A manager, two mentors and one frontend buddy assigned to the first mentor."""
    manager: Actor
    mentor: Actor
    other_mentor: Actor
    buddy_actor: Actor
    buddy: BuddyDB


@dataclass
class Program(People):
    """People plus one published curriculum the buddy is enrolled in."""
    curriculum: CurriculumDB = None
    enrollment: BuddyCurriculumDB = None
    assignments: List[TaskAssignmentDB] = field(default_factory=list)
    week_ids: List[str] = field(default_factory=list)


async def seed_people() -> People:
    users = get_user_repository()
    manager_user = await users.create_user("Maya Manager", "maya@example.com", "manager")
    mentor_user = await users.create_user("Omar Mentor", "omar@example.com", "mentor")
    other_user = await users.create_user("Nina Mentor", "nina@example.com", "mentor")

    manager = Actor(id=manager_user.id, role="manager")
    buddy = await get_buddy_service().create_buddy(manager, {
        "name": "Bea Buddy",
        "email": "bea@example.com",
        "domain_role": "frontend",
        "assigned_mentor_user_id": mentor_user.id,
        "auto_enroll": False,
    })
    return People(
        manager=manager,
        mentor=Actor(id=mentor_user.id, role="mentor"),
        other_mentor=Actor(id=other_user.id, role="mentor"),
        buddy_actor=Actor(id=buddy.user_id, role="buddy"),
        buddy=buddy,
    )


async def seed_curriculum(manager: Actor, weeks: int = 2, tasks_per_week: int = 2, publish: bool = True):
    """Create a frontend curriculum; returns (curriculum, week ids in order)."""
    content = get_content_service()
    curriculum = await content.create_curriculum(manager, {
        "name": "Frontend Onboarding",
        "description": "First weeks for frontend buddies",
        "domain_role": "frontend",
        "total_weeks": weeks,
    })
    week_ids = []
    for number in range(1, weeks + 1):
        week = await content.add_week(manager, curriculum.id, {"week_number": number, "title": f"Week {number}"})
        week_ids.append(week.id)
        for index in range(1, tasks_per_week + 1):
            await content.add_task_template(manager, week.id, {
                "title": f"Task {number}.{index}",
                "description": f"Build part {index} of week {number}",
            })
    if publish:
        curriculum = await content.publish(manager, curriculum.id)
    return curriculum, week_ids


@pytest_asyncio.fixture
async def people(database) -> People:
    return await seed_people()


@pytest_asyncio.fixture
async def published(people):
    """(curriculum, week_ids) for a published 2 week x 2 task curriculum, nobody enrolled."""
    return await seed_curriculum(people.manager)


@pytest_asyncio.fixture
async def program(people, published) -> Program:
    """Buddy enrolled in the published curriculum, mentor assigned."""
    curriculum, week_ids = published
    enrollment = await get_enrollment_service().enroll(people.manager, people.buddy.id, curriculum.id)
    assignments = await get_assignment_repository().list_for_buddy(people.buddy.id)
    return Program(
        manager=people.manager,
        mentor=people.mentor,
        other_mentor=people.other_mentor,
        buddy_actor=people.buddy_actor,
        buddy=people.buddy,
        curriculum=curriculum,
        enrollment=enrollment,
        assignments=assignments,
        week_ids=week_ids,
    )


@pytest.fixture
def submission_payload():
    return {
        "description": "Implemented the layout and wired up the form",
        "notes": "Used CSS grid",
        "resources": [
            {"type": "github", "label": "Repository", "url": "https://github.com/bea/onboarding"},
        ],
    }
