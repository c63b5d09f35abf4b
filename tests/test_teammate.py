"""
Teammate-side runner tests: environment, ticks, shutdown and the task executor loop.
"""

import asyncio
from datetime import timedelta

import pytest

from agent_teams import TeamHooks, TeammateRunnerOptions, run_teammate
from agent_teams.coordination import read_agent_state, write_agent_state
from agent_teams.errors import LockTimeoutError, TeamConfigError
from agent_teams.models import (
    AgentRunStatus,
    AgentState,
    TaskStatus,
    TeamEnv,
    TeamEventType,
    TeammateEventType,
    utc_now,
)
from agent_teams.protocols import is_idle_notification, is_shutdown_ack


def _types(events):
    return [e.type for e in events]


class TestOptionsFromEnv:

    def test_reads_identity(self):
        options = TeammateRunnerOptions.from_env({
            TeamEnv.TEAM_NAME: "t",
            TeamEnv.BASE_DIR: "/tmp/teams",
            TeamEnv.AGENT_ID: "worker-1",
            TeamEnv.SESSION_ID: "s-1",
            TeamEnv.TRACE_ID: "trace-1",
            TeamEnv.PARENT_SPAN_ID: "span-1",
        })
        assert options.team_name == "t"
        assert options.base_dir == "/tmp/teams"
        assert options.agent_id == "worker-1"
        assert options.session_id == "s-1"
        assert options.system_prompt is None
        assert options.trace_id == "trace-1"
        assert options.parent_span_id == "span-1"

    def test_missing_variable(self):
        with pytest.raises(TeamConfigError) as exc_info:
            TeammateRunnerOptions.from_env({TeamEnv.TEAM_NAME: "t", TeamEnv.BASE_DIR: "/tmp"})
        assert TeamEnv.AGENT_ID in str(exc_info.value)
        assert TeamEnv.SESSION_ID in str(exc_info.value)


class TestStart:

    def test_requires_team_config(self, make_runner):
        with pytest.raises(TeamConfigError):
            make_runner().start()

    @pytest.mark.asyncio
    async def test_writes_running_heartbeat(self, team, make_runner, transport, paths):
        await team.initialize()
        runner = make_runner()
        runner.start()

        state = read_agent_state(transport, paths, "worker-1")
        assert state.status == AgentRunStatus.RUNNING
        assert state.pid > 0
        assert runner.lead_id == "lead"

    @pytest.mark.asyncio
    async def test_session_mismatch_is_logged(self, team, make_runner, caplog):
        await team.initialize()
        make_runner(session_id="someone-else").start()
        assert "Session mismatch" in caplog.text


class TestTick:

    @pytest.mark.asyncio
    async def test_claims_next_task(self, team, make_runner, transport, paths):
        assigned = []
        await team.initialize()
        await team.create_tasks([{"id": "a", "title": "A"}])
        runner = make_runner(hooks=TeamHooks(on_task_assigned=assigned.append))

        events = await runner.tick()

        assert _types(events) == [TeammateEventType.TASK_CLAIMED]
        assert events[0].task_id == "a"
        assert team.task_queue.get("a").assignee == "worker-1"
        state = read_agent_state(transport, paths, "worker-1")
        assert state.current_task == "a"
        assert state.status == AgentRunStatus.RUNNING
        assert [p["taskId"] for p in assigned] == ["a"]

    @pytest.mark.asyncio
    async def test_idle_reported_once(self, team, make_runner, transport, paths):
        await team.initialize()
        runner = make_runner()

        assert _types(await runner.tick()) == [TeammateEventType.IDLE]
        assert await runner.tick() == []

        notifications = [m for m in team.mailbox.read_all("lead") if is_idle_notification(m)]
        assert len(notifications) == 1
        assert read_agent_state(transport, paths, "worker-1").status == AgentRunStatus.IDLE

    @pytest.mark.asyncio
    async def test_busy_teammate_is_not_idle(self, team, make_runner):
        await team.initialize()
        await team.create_tasks([{"id": "a", "title": "A"}])
        runner = make_runner()

        assert _types(await runner.tick()) == [TeammateEventType.TASK_CLAIMED]
        assert await runner.tick() == []

    @pytest.mark.asyncio
    async def test_waits_while_others_hold_tasks(self, team, make_runner):
        await team.initialize()
        await team.create_tasks([{"id": "a", "title": "A"}, {"id": "b", "title": "B", "dependencies": ["a"]}])
        team.task_queue.claim("a", "worker-2")

        assert await make_runner().tick() == []

    @pytest.mark.asyncio
    async def test_idle_again_after_new_work(self, team, make_runner):
        await team.initialize()
        runner = make_runner()
        assert _types(await runner.tick()) == [TeammateEventType.IDLE]

        await team.create_tasks([{"id": "a", "title": "A"}])
        assert _types(await runner.tick()) == [TeammateEventType.TASK_CLAIMED]
        await runner.complete_task("a", "ok")
        assert _types(await runner.tick()) == [TeammateEventType.IDLE]

    @pytest.mark.asyncio
    async def test_messages_are_received(self, team, make_runner):
        await team.initialize()
        await team.create_tasks([{"id": "a", "title": "A"}])
        team.task_queue.claim("a", "worker-2")
        runner = make_runner()
        runner.start()

        await team.send_message("worker-1", "hi")
        await team.broadcast_message("all")
        events = await runner.tick()

        assert _types(events) == [TeammateEventType.MESSAGE_RECEIVED] * 2
        assert [e.message.payload["content"] for e in events] == ["hi", "all"]

    @pytest.mark.asyncio
    async def test_stale_heartbeat_is_refreshed(self, team, make_runner, transport, paths):
        await team.initialize()
        await team.create_tasks([{"id": "a", "title": "A"}])
        team.task_queue.claim("a", "worker-2")
        runner = make_runner(heartbeat_interval_ms=0)
        runner.start()

        old = utc_now() - timedelta(minutes=1)
        write_agent_state(transport, paths, AgentState(
            agent_id="worker-1", status=AgentRunStatus.RUNNING, pid=1, last_heartbeat=old))

        await runner.tick()
        state = read_agent_state(transport, paths, "worker-1")
        assert state.last_heartbeat > old
        assert state.status == AgentRunStatus.RUNNING


class TestShutdown:

    @pytest.mark.asyncio
    async def test_shutdown_request_round_trip(self, team, make_runner, transport, paths):
        requested = []
        await team.initialize()
        await team.create_tasks([{"id": "a", "title": "A"}])
        runner = make_runner(hooks=TeamHooks(on_shutdown_requested=requested.append))
        runner.start()

        await team.send_message("worker-1", "before")
        await team.shutdown_teammate("worker-1", "wrap up")
        await team.send_message("worker-1", "after")

        events = await runner.tick()
        assert _types(events) == [
            TeammateEventType.MESSAGE_RECEIVED,
            TeammateEventType.SHUTDOWN_REQUESTED,
        ]
        assert runner.finished
        assert team.task_queue.get("a").status == TaskStatus.PENDING
        assert read_agent_state(transport, paths, "worker-1").status == AgentRunStatus.STOPPED
        assert await runner.tick() == []
        assert requested[0]["requestedBy"] == "lead"

        lead_events = await team.tick()
        assert [(e.type, e.agent_id) for e in lead_events] == [
            (TeamEventType.TEAMMATE_EXITED, "worker-1")
        ]

    @pytest.mark.asyncio
    async def test_run_ends_after_shutdown(self, team, make_runner):
        await team.initialize()
        await team.shutdown_all()
        runner = make_runner()

        events = [event async for event in runner.run()]

        assert _types(events) == [TeammateEventType.SHUTDOWN_REQUESTED]
        assert any(is_shutdown_ack(m) for m in team.mailbox.read_all("lead"))

    @pytest.mark.asyncio
    async def test_stop_writes_stopped_heartbeat(self, team, make_runner, transport, paths):
        await team.initialize()
        runner = make_runner()

        async for event in runner.run():
            if event.type == TeammateEventType.IDLE:
                runner.stop()

        assert read_agent_state(transport, paths, "worker-1").status == AgentRunStatus.STOPPED

    @pytest.mark.asyncio
    async def test_shutdown_ack_retried_after_lock_timeout(self, team, make_runner, transport,
                                                           paths, monkeypatch):
        await team.initialize()
        await team.create_tasks([{"id": "a", "title": "A"}])
        runner = make_runner()
        runner.start()
        await team.shutdown_teammate("worker-1")

        send = runner.mailbox.send
        attempts = []

        def flaky_send(message):
            attempts.append(message)
            if len(attempts) == 1:
                raise LockTimeoutError("mailbox-lead", 0.01)
            return send(message)

        monkeypatch.setattr(runner.mailbox, "send", flaky_send)

        assert _types(await runner.tick()) == [TeammateEventType.SHUTDOWN_REQUESTED]
        assert runner.finished
        assert runner.shutdown_pending
        assert TeamEventType.TEAMMATE_EXITED not in _types(await team.tick())

        assert await runner.tick() == []
        assert not runner.shutdown_pending
        assert read_agent_state(transport, paths, "worker-1").status == AgentRunStatus.STOPPED
        assert team.task_queue.get("a").status == TaskStatus.PENDING
        assert [(e.type, e.agent_id) for e in await team.tick()] == [
            (TeamEventType.TEAMMATE_EXITED, "worker-1")
        ]

    @pytest.mark.asyncio
    async def test_run_keeps_retrying_shutdown_ack(self, team, make_runner, monkeypatch):
        await team.initialize()
        await team.create_tasks([{"id": "a", "title": "A"}])
        await team.shutdown_teammate("worker-1")
        runner = make_runner()

        send = runner.mailbox.send
        attempts = []

        def flaky_send(message):
            attempts.append(message)
            if len(attempts) <= 2:
                raise LockTimeoutError("mailbox-lead", 0.01)
            return send(message)

        monkeypatch.setattr(runner.mailbox, "send", flaky_send)

        events = [event async for event in runner.run()]

        assert _types(events) == [TeammateEventType.SHUTDOWN_REQUESTED]
        assert len(attempts) == 3
        assert any(is_shutdown_ack(m) for m in team.mailbox.read_all("lead"))
        assert team.task_queue.get("a").status == TaskStatus.PENDING


class TestCrashDetection:

    @pytest.mark.asyncio
    async def test_busy_teammate_that_stops_ticking(self, team, make_runner, transport, paths):
        await team.initialize()
        await team.create_tasks([{"id": "a", "title": "A"}])
        runner = make_runner()
        assert _types(await runner.tick()) == [TeammateEventType.TASK_CLAIMED]

        last = read_agent_state(transport, paths, "worker-1").last_heartbeat
        assert await team.tick(now=last + timedelta(milliseconds=1000)) == []

        events = await team.tick(now=last + timedelta(milliseconds=1001))
        assert [(e.type, e.agent_id) for e in events] == [
            (TeamEventType.TEAMMATE_CRASHED, "worker-1")
        ]

    @pytest.mark.asyncio
    async def test_idle_teammate_that_stops_ticking(self, team, make_runner, transport, paths):
        await team.initialize()
        runner = make_runner(heartbeat_interval_ms=0)

        assert _types(await runner.tick()) == [TeammateEventType.IDLE]
        assert await runner.tick() == []

        state = read_agent_state(transport, paths, "worker-1")
        assert state.status == AgentRunStatus.RUNNING
        assert state.current_task is None
        notifications = [m for m in team.mailbox.read_all("lead") if is_idle_notification(m)]
        assert len(notifications) == 1

        def crashed(events):
            return [e.agent_id for e in events if e.type == TeamEventType.TEAMMATE_CRASHED]

        last = state.last_heartbeat
        assert crashed(await team.tick(now=last + timedelta(milliseconds=1000))) == []
        assert crashed(await team.tick(now=last + timedelta(hours=1))) == ["worker-1"]


class TestOperations:

    @pytest.mark.asyncio
    async def test_complete_and_fail_fire_hooks(self, team, make_runner):
        completed, failed = [], []
        await team.initialize()
        await team.create_tasks([{"id": "a", "title": "A"}, {"id": "b", "title": "B"}])
        runner = make_runner(hooks=TeamHooks(on_task_completed=completed.append,
                                             on_task_failed=failed.append))
        await runner.tick()
        assert (await runner.complete_task("a", {"ok": True})).status == TaskStatus.COMPLETED
        await runner.tick()
        assert (await runner.fail_task("b", "boom")).status == TaskStatus.FAILED

        assert await runner.complete_task("a", "again") is None
        assert [p["taskId"] for p in completed] == ["a"]
        assert [p["error"] for p in failed] == ["boom"]
        assert runner.current_task is None

    @pytest.mark.asyncio
    async def test_submit_plan_reaches_lead(self, team, make_runner):
        await team.initialize()
        runner = make_runner()
        plan = await runner.submit_plan("Plan", "Steps")

        events = await team.tick()
        assert (TeamEventType.PLAN_SUBMITTED, plan.id) in [(e.type, e.plan_id) for e in events]

    @pytest.mark.asyncio
    async def test_send_message_to_lead(self, team, make_runner):
        await team.initialize()
        await team.create_tasks([{"title": "A"}])
        await make_runner().send_message("lead", "status update")

        events = await team.tick()
        assert [(e.type, e.from_agent) for e in events] == [(TeamEventType.MESSAGE_SENT, "worker-1")]


class TestRunTeammate:

    @pytest.mark.asyncio
    async def test_executes_tasks_until_shutdown(self, team, make_runner):
        await team.initialize()
        await team.create_tasks([
            {"id": "a", "title": "A"},
            {"id": "b", "title": "B", "dependencies": ["a"]},
            {"id": "bad", "title": "Bad"},
        ])
        order = []

        async def execute(task):
            order.append(task.id)
            if task.id == "bad":
                raise RuntimeError("cannot do it")
            return f"{task.title} done"

        runner = make_runner()
        worker = asyncio.ensure_future(run_teammate(execute, runner.options))

        for _ in range(500):
            if team.task_queue.all_done():
                break
            await asyncio.sleep(0.01)
        await team.shutdown_teammate("worker-1")
        await asyncio.wait_for(worker, timeout=5)

        assert order == ["a", "b", "bad"]
        assert team.task_queue.get("a").result == "A done"
        assert team.task_queue.get("b").status == TaskStatus.COMPLETED
        bad = team.task_queue.get("bad")
        assert bad.status == TaskStatus.FAILED
        assert bad.error == "cannot do it"
