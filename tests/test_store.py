"""
Tests for report persistence.
"""

from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from formplay.core.exceptions import Conflict, Forbidden, NotFound
from formplay.models.log import LogAction
from formplay.models.report import ReportStatus
from formplay.services.store import ReportStore


async def _draft(db: AsyncSession, creator, receiver, **values):
    report = await ReportStore.create_report(db, {
        "creator_id": creator.id,
        "receiver_id": receiver.id,
        "status": ReportStatus.DRAFT.value,
        "date": date(2024, 1, 5),
        "form_data": {"fields": {}, "metadata": {}},
        **values,
    })
    await db.commit()
    return report


@pytest.mark.asyncio
async def test_seeded_users_are_partners(db_session: AsyncSession, users):
    alice, bob = users

    user, partner = await ReportStore.get_user_with_partner(db_session, alice.id)

    assert user.id == alice.id
    assert partner.id == bob.id
    assert bob.partner_id == alice.id


@pytest.mark.asyncio
async def test_get_user_with_partner_unknown(db_session: AsyncSession, users):
    with pytest.raises(NotFound):
        await ReportStore.get_user_with_partner(db_session, 999)


@pytest.mark.asyncio
async def test_create_report_starts_at_version_one(db_session: AsyncSession, users):
    alice, bob = users

    report = await _draft(db_session, alice, bob, location="Initech")
    fetched = await ReportStore.get_report(db_session, report.id)

    assert fetched.version == 1
    assert fetched.status == "draft"
    assert fetched.creator_name == "Alice"
    assert fetched.receiver_name == "Bob"
    assert fetched.location == "Initech"


@pytest.mark.asyncio
async def test_get_report_not_found(db_session: AsyncSession, users):
    with pytest.raises(NotFound):
        await ReportStore.get_report(db_session, 42)


@pytest.mark.asyncio
async def test_update_report_bumps_version(db_session: AsyncSession, users):
    alice, bob = users
    report = await _draft(db_session, alice, bob)

    updated = await ReportStore.update_report(
        db_session, report.id, {"location": "Chotchkie's"}, ReportStatus.DRAFT, 1
    )
    await db_session.commit()

    assert updated.version == 2
    assert updated.location == "Chotchkie's"


@pytest.mark.asyncio
async def test_update_report_stale_version_conflicts(db_session: AsyncSession, users):
    alice, bob = users
    report = await _draft(db_session, alice, bob)
    await ReportStore.update_report(db_session, report.id, {"sound": "jazz"}, ReportStatus.DRAFT, 1)
    await db_session.commit()

    with pytest.raises(Conflict):
        await ReportStore.update_report(db_session, report.id, {"sound": "rap"}, ReportStatus.DRAFT, 1)

    current = await ReportStore.get_report(db_session, report.id)
    assert current.sound == "jazz"


@pytest.mark.asyncio
async def test_update_report_stale_status_conflicts(db_session: AsyncSession, users):
    alice, bob = users
    report = await _draft(db_session, alice, bob)

    with pytest.raises(Conflict):
        await ReportStore.update_report(
            db_session, report.id, {"status": "pending_approval"}, ReportStatus.PENDING_REVIEW, 1
        )


@pytest.mark.asyncio
async def test_update_report_refuses_terminal(db_session: AsyncSession, users):
    alice, bob = users
    report = await _draft(db_session, alice, bob, status=ReportStatus.COMPLETED.value)

    with pytest.raises(Forbidden):
        await ReportStore.update_report(
            db_session, report.id, {"location": "elsewhere"}, ReportStatus.COMPLETED, 1
        )


@pytest.mark.asyncio
async def test_update_report_ignores_immutable_columns(db_session: AsyncSession, users):
    alice, bob = users
    report = await _draft(db_session, alice, bob)

    updated = await ReportStore.update_report(
        db_session, report.id, {"creator_id": bob.id, "receiver_id": alice.id, "sound": "quiet"},
        ReportStatus.DRAFT, 1,
    )

    assert updated.creator_id == alice.id
    assert updated.receiver_id == bob.id


@pytest.mark.asyncio
async def test_update_report_not_found(db_session: AsyncSession, users):
    with pytest.raises(NotFound):
        await ReportStore.update_report(db_session, 77, {"sound": "x"}, ReportStatus.DRAFT, 1)


@pytest.mark.asyncio
async def test_list_by_user_and_status(db_session: AsyncSession, users):
    alice, bob = users
    first = await _draft(db_session, alice, bob)
    second = await _draft(db_session, bob, alice, status=ReportStatus.PENDING_REVIEW.value)

    for user in (alice, bob):
        reports = await ReportStore.list_by_user(db_session, user.id)
        assert {r.id for r in reports} == {first.id, second.id}

    pending = await ReportStore.list_by_user(db_session, alice.id, ReportStatus.PENDING_REVIEW)
    assert [r.id for r in pending] == [second.id]

    drafts = await ReportStore.list_by_status(db_session, ReportStatus.DRAFT)
    assert [r.id for r in drafts] == [first.id]


@pytest.mark.asyncio
async def test_count_for_user(db_session: AsyncSession, users):
    alice, bob = users
    await _draft(db_session, alice, bob)
    await _draft(db_session, alice, bob, status=ReportStatus.PENDING_REVIEW.value)
    await _draft(db_session, alice, bob, status=ReportStatus.PENDING_APPROVAL.value)
    await _draft(db_session, alice, bob, status=ReportStatus.COMPLETED.value)
    await _draft(db_session, bob, alice, status=ReportStatus.ABORTED.value)

    counts = await ReportStore.count_for_user(db_session, bob.id)

    assert counts == {"pending": 2, "completed": 1, "aborted": 1}


@pytest.mark.asyncio
async def test_count_for_user_without_reports(db_session: AsyncSession, users):
    alice, _ = users

    assert await ReportStore.count_for_user(db_session, alice.id) == {
        "pending": 0, "completed": 0, "aborted": 0,
    }


@pytest.mark.asyncio
async def test_logs_are_listed_newest_first(db_session: AsyncSession, users):
    alice, bob = users
    report = await _draft(db_session, alice, bob)
    await ReportStore.append_log(db_session, report.id, alice.id, LogAction.CREATED, {"status": ReportStatus.DRAFT})
    await ReportStore.append_log(db_session, report.id, bob.id, LogAction.VIEWED)
    await db_session.commit()

    logs = await ReportStore.list_logs(db_session, report.id)

    assert [log.action for log in logs] == ["viewed", "created"]
    assert logs[1].details == {"status": "draft"}
    assert logs[0].user_name == "Bob"
