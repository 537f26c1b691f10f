from datetime import date

from perfhub.models.evaluation import Evaluation
from perfhub.models.initiated_appraisal import ScheduledAppraisalTask
from perfhub.services import scheduler
from perfhub.services.scheduler import run_due_tasks
from perfhub.services.scheduling import (
    Timing,
    compute_window,
    initiate_evaluations,
    launch,
    reminders_due,
    window_from,
)

from tests.helpers import (
    create_appraisal,
    create_calendar,
    create_company,
    create_group,
    create_template,
    create_user,
)


def _org(db):
    company = create_company(db)
    hr = create_user(db, "hr@acme.test", company=company, role="hr_manager")
    boss = create_user(db, "boss@acme.test", company=company, role="manager", manager=hr)
    emp = create_user(db, "emp@acme.test", company=company, manager=boss)
    group = create_group(db, company, [emp])
    template = create_template(db, company)
    return company, boss, emp, group, template


def test_window_for_a_quarter():
    w = compute_window(date(2030, 1, 1), date(2030, 3, 31), Timing(10, 20, 3))
    assert w.initiate_on == date(2030, 3, 21)
    assert w.close_on == date(2030, 4, 10)
    assert w.reminder_dates == (date(2030, 3, 26), date(2030, 3, 31), date(2030, 4, 5))


def test_window_never_starts_before_the_period():
    w = compute_window(date(2030, 1, 1), date(2030, 1, 10), Timing(30, 5, 0))
    assert w.initiate_on == date(2030, 1, 1)
    assert w.close_on == date(2030, 1, 6)
    assert w.reminder_dates == ()


def test_reminder_dates_spread_over_close_window():
    w = window_from(date(2030, 5, 1), Timing(0, 7, 2))
    # 7 // 3 = 2, 14 // 3 = 4
    assert w.reminder_dates == (date(2030, 5, 3), date(2030, 5, 5))

    assert reminders_due(date(2030, 3, 21), Timing(10, 20, 3), date(2030, 3, 25)) == 0
    assert reminders_due(date(2030, 3, 21), Timing(10, 20, 3), date(2030, 3, 31)) == 2
    assert reminders_due(date(2030, 3, 21), Timing(10, 20, 3), date(2031, 1, 1)) == 3


def test_initiation_is_idempotent(db_session):
    company, boss, emp, group, template = _org(db_session)
    a = create_appraisal(db_session, company, group, [template], status="active")

    first = initiate_evaluations(db_session, a, initiate_on=date(2030, 1, 1), due_date=date(2030, 1, 31))
    second = initiate_evaluations(db_session, a, initiate_on=date(2030, 1, 1), due_date=date(2030, 1, 31))
    db_session.commit()

    assert len(first.created) == 1
    assert second.created == []
    assert second.already_existing == 1
    assert db_session.query(Evaluation).count() == 1


def test_reminders_then_close(db_session, fake_smtp):
    company, boss, emp, group, template = _org(db_session)
    a = create_appraisal(db_session, company, group, [template], days_to_close=20, number_of_reminders=3)
    launch(db_session, a, date(2030, 1, 1))
    db_session.commit()
    assert len(fake_smtp.messages()) == 1

    ev = db_session.query(Evaluation).one()
    assert ev.due_date == date(2030, 1, 21)

    # reminder dates are 01-06, 01-11 and 01-16: two are due, one email goes out
    summary = run_due_tasks(db_session, date(2030, 1, 12))
    assert summary.reminders_sent == 1
    assert ev.reminders_sent == 2
    assert ev.last_reminder_at is not None
    assert len(fake_smtp.messages()) == 2
    assert fake_smtp.messages()[-1]["Subject"] == "Reminder: appraisal due on 2030-01-21"

    assert run_due_tasks(db_session, date(2030, 1, 12)).reminders_sent == 0

    assert run_due_tasks(db_session, date(2030, 1, 16)).reminders_sent == 1
    assert ev.reminders_sent == 3

    # due date is still inside the window
    summary = run_due_tasks(db_session, date(2030, 1, 21))
    assert summary.evaluations_closed == 0

    summary = run_due_tasks(db_session, date(2030, 1, 22))
    assert summary.reminders_sent == 0
    assert summary.evaluations_closed == 1
    assert summary.appraisals_closed == 1

    db_session.refresh(a)
    assert ev.status == "closed"
    assert a.status == "closed"
    assert a.closed_at is not None


def test_submitted_evaluation_reminds_the_manager(db_session, fake_smtp):
    company, boss, emp, group, template = _org(db_session)
    a = create_appraisal(db_session, company, group, [template], days_to_close=10, number_of_reminders=1)
    launch(db_session, a, date(2030, 1, 1))
    db_session.commit()

    ev = db_session.query(Evaluation).one()
    ev.status = "submitted"
    db_session.commit()

    run_due_tasks(db_session, date(2030, 1, 6))
    assert fake_smtp.messages()[-1]["To"] == "boss@acme.test"


def test_reminder_counts_even_when_email_is_skipped(db_session):
    company, boss, emp, group, template = _org(db_session)
    a = create_appraisal(db_session, company, group, [template], days_to_close=10, number_of_reminders=1)
    launch(db_session, a, date(2030, 1, 1))
    db_session.commit()

    summary = run_due_tasks(db_session, date(2030, 1, 6))
    assert summary.reminders_sent == 1
    assert db_session.query(Evaluation).one().reminders_sent == 1


def test_calendar_tasks_run_on_their_dates(db_session):
    company, boss, emp, group, template = _org(db_session)
    cal, (q1, q2) = create_calendar(
        db_session,
        company,
        [
            ("Q1 2030", date(2030, 1, 1), date(2030, 3, 31)),
            ("Q2 2030", date(2030, 4, 1), date(2030, 6, 30)),
        ],
    )
    a = create_appraisal(
        db_session,
        company,
        group,
        [template],
        publish_type="as_per_calendar",
        frequency_calendar_id=cal.id,
        days_to_initiate=10,
        days_to_close=20,
        number_of_reminders=0,
    )
    result = launch(db_session, a, date(2029, 12, 1))
    db_session.commit()
    assert result.tasks_scheduled == 2

    assert run_due_tasks(db_session, date(2030, 3, 20)).tasks_executed == 0

    summary = run_due_tasks(db_session, date(2030, 3, 21))
    assert summary.tasks_executed == 1
    assert summary.evaluations_created == 1

    # past Q1's close date; Q2 is still pending so the appraisal stays open
    summary = run_due_tasks(db_session, date(2030, 4, 11))
    assert summary.tasks_executed == 0
    assert summary.evaluations_closed == 1
    assert summary.appraisals_closed == 0

    summary = run_due_tasks(db_session, date(2030, 6, 20))
    assert summary.tasks_executed == 1

    ev = db_session.query(Evaluation).filter(Evaluation.frequency_calendar_detail_id == q2.id).one()
    assert (ev.initiated_on, ev.due_date) == (date(2030, 6, 20), date(2030, 7, 10))

    summary = run_due_tasks(db_session, date(2030, 7, 11))
    assert summary.evaluations_closed == 1
    assert summary.appraisals_closed == 1

    statuses = [t.status for t in db_session.query(ScheduledAppraisalTask).all()]
    assert statuses == ["completed", "completed"]


def test_failed_task_is_recorded_and_others_continue(db_session, monkeypatch):
    company, boss, emp, group, template = _org(db_session)
    cal, (q1, q2) = create_calendar(
        db_session,
        company,
        [
            ("Q1 2030", date(2030, 1, 1), date(2030, 3, 31)),
            ("Q2 2030", date(2030, 4, 1), date(2030, 6, 30)),
        ],
    )
    a = create_appraisal(
        db_session,
        company,
        group,
        [template],
        publish_type="as_per_calendar",
        frequency_calendar_id=cal.id,
    )
    launch(db_session, a, date(2029, 12, 1))
    db_session.commit()

    real = scheduler.initiate_for_period

    def flaky(db, appraisal, detail):
        if detail.id == q1.id:
            raise RuntimeError("boom")
        return real(db, appraisal, detail)

    monkeypatch.setattr(scheduler, "initiate_for_period", flaky)

    summary = run_due_tasks(db_session, date(2030, 6, 30))
    assert summary.tasks_failed == 1
    assert summary.tasks_executed == 1
    assert summary.evaluations_created == 1

    tasks = {
        t.frequency_calendar_detail_id: t
        for t in db_session.query(ScheduledAppraisalTask).all()
    }
    assert tasks[q1.id].status == "failed"
    assert tasks[q1.id].error == "RuntimeError: boom"
    assert tasks[q2.id].status == "completed"

    # failed tasks are not retried automatically
    assert run_due_tasks(db_session, date(2030, 6, 30)).tasks_failed == 0


def test_draft_appraisals_are_ignored(db_session):
    company, boss, emp, group, template = _org(db_session)
    cal, _ = create_calendar(db_session, company, [("Q1 2030", date(2030, 1, 1), date(2030, 3, 31))])
    create_appraisal(
        db_session, company, group, [template], publish_type="as_per_calendar", frequency_calendar_id=cal.id
    )

    summary = run_due_tasks(db_session, date(2030, 12, 31))
    assert summary.tasks_executed == 0
    assert summary.appraisals_closed == 0
