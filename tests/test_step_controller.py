"""
Tests for manual stepping and timed auto-play.
"""

import asyncio

import pytest

from algo_stepper_core.execution_engine import CheckpointCoordinator, CoroutineProgram
from algo_stepper_core.graph_model import parse_adjacency
from algo_stepper_core.models import SessionStatus
from algo_stepper_core.step_controller import StepController, StepMode


async def _wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


def _checkpoints(count):
    async def program(anim, graph):
        for i in range(count):
            await anim.highlight_node(i)
    return CoroutineProgram(program)


class TestIntervals:
    """Test cases for interval configuration."""

    def test_default_interval_from_config(self, monkeypatch):
        monkeypatch.delenv('ALGOSTEPPER_AUTOPLAY_INTERVAL_MS', raising=False)
        monkeypatch.delenv('ALGOSTEPPER_AUTOPLAY_MIN_MS', raising=False)
        monkeypatch.delenv('ALGOSTEPPER_AUTOPLAY_MAX_MS', raising=False)
        controller = StepController(CheckpointCoordinator())
        assert controller.interval_ms == 800
        assert (controller.min_interval_ms, controller.max_interval_ms) == (100, 2000)

    def test_interval_from_environment(self, monkeypatch):
        monkeypatch.setenv('ALGOSTEPPER_AUTOPLAY_INTERVAL_MS', '300')
        controller = StepController(CheckpointCoordinator())
        assert controller.interval_ms == 300

    def test_interval_is_clamped(self):
        controller = StepController(CheckpointCoordinator(), interval_ms=50,
                                    min_interval_ms=100, max_interval_ms=2000)
        assert controller.interval_ms == 100
        assert controller.set_interval(5000) == 2000
        assert controller.set_interval(450) == 450


class TestManualStepping:
    """Test cases for manual mode."""

    def test_step_releases_one_checkpoint(self):
        async def scenario():
            coordinator = CheckpointCoordinator()
            controller = StepController(coordinator)
            session = await coordinator.start(_checkpoints(2), parse_adjacency("[[],[]]"))
            counts = [len(session.events)]
            assert await controller.step() is True
            counts.append(len(session.events))
            assert await controller.step() is True
            counts.append(len(session.events))
            assert await controller.step() is False
            return session, counts, controller

        session, counts, controller = asyncio.run(scenario())
        assert counts == [1, 2, 3]
        assert session.status == SessionStatus.FINISHED
        assert controller.mode == StepMode.MANUAL
        assert controller.can_step is False

    def test_nothing_to_step_without_session(self):
        async def scenario():
            controller = StepController(CheckpointCoordinator())
            return await controller.step(), controller.play(), controller.tick()

        assert asyncio.run(scenario()) == (False, False, False)


class TestAutoPlay:
    """Test cases for auto-play mode."""

    def test_auto_play_runs_to_completion(self):
        """Test that three checkpoints take three ticks and auto-play then stops."""
        async def scenario():
            coordinator = CheckpointCoordinator()
            controller = StepController(coordinator, interval_ms=100)
            session = await coordinator.start(_checkpoints(3), parse_adjacency("[[],[],[]]"))
            assert controller.play() is True
            assert controller.is_playing is True
            await _wait_until(lambda: session.is_terminal)
            await asyncio.sleep(0.15)
            return session, controller

        session, controller = asyncio.run(scenario())
        assert session.status == SessionStatus.FINISHED
        assert session.log_lines()[-1] == "__MAIN_RETURN__:None"
        assert controller.ticks == 3
        assert controller.mode == StepMode.MANUAL
        assert controller.play() is False

    def test_auto_play_switches_off_when_nothing_is_pending(self):
        """Test that a tick finding the program busy turns auto-play off."""
        gate = []

        async def program(anim, graph):
            await anim.highlight_node(0)
            gate.append(asyncio.Event())
            await gate[0].wait()
            await anim.highlight_node(1)

        async def scenario():
            coordinator = CheckpointCoordinator()
            controller = StepController(coordinator, interval_ms=5, min_interval_ms=1)
            session = await coordinator.start(CoroutineProgram(program), parse_adjacency("[[],[]]"))
            controller.play()
            await _wait_until(lambda: not controller.is_playing)
            status_when_stopped = session.status
            gate[0].set()
            await session.wait_settled()
            await asyncio.sleep(0.02)
            return session, controller, status_when_stopped

        session, controller, status_when_stopped = asyncio.run(scenario())
        assert status_when_stopped == SessionStatus.RUNNING
        assert controller.ticks == 1
        # the next checkpoint waits for a manual step
        assert session.status == SessionStatus.SUSPENDED
        assert session.log_lines() == ["Highlight node 0", "Highlight node 1"]

    def test_auto_play_stops_when_program_fails(self):
        """Test that a failing program switches auto-play off and cancels the timer."""
        async def program(anim, graph):
            await anim.highlight_node(0)
            raise ValueError("broken step")

        async def scenario():
            coordinator = CheckpointCoordinator()
            controller = StepController(coordinator, interval_ms=5, min_interval_ms=1)
            session = await coordinator.start(CoroutineProgram(program), parse_adjacency("[[]]"))
            assert controller.play() is True
            timer = controller._timer_task
            await _wait_until(lambda: session.is_terminal)
            await asyncio.sleep(0.02)
            return session, controller, timer

        session, controller, timer = asyncio.run(scenario())
        assert session.status == SessionStatus.FAILED
        assert session.log_lines() == ["Highlight node 0", "__EXCEPTION__:broken step"]
        assert controller.mode == StepMode.MANUAL
        assert controller.ticks == 1
        assert timer.cancelled() is True
        assert controller.play() is False

    def test_toggle(self):
        async def scenario():
            coordinator = CheckpointCoordinator()
            controller = StepController(coordinator, interval_ms=2000)
            await coordinator.start(_checkpoints(2), parse_adjacency("[[],[]]"))
            first = controller.toggle_auto_play()
            second = controller.toggle_auto_play()
            return first, second, controller

        first, second, controller = asyncio.run(scenario())
        assert (first, second) == (True, False)
        assert controller.ticks == 0
        assert controller.get_state()['mode'] == 'manual'

    def test_teardown_stops_auto_play(self):
        async def scenario():
            coordinator = CheckpointCoordinator()
            controller = StepController(coordinator, interval_ms=2000)
            await coordinator.start(_checkpoints(2), parse_adjacency("[[],[]]"))
            controller.play()
            timer = controller._timer_task
            coordinator.teardown()
            await asyncio.sleep(0.01)
            return controller, timer

        controller, timer = asyncio.run(scenario())
        assert controller.is_playing is False
        assert timer.cancelled() is True

    def test_tick_when_not_playing_does_nothing(self):
        async def scenario():
            coordinator = CheckpointCoordinator()
            controller = StepController(coordinator)
            session = await coordinator.start(_checkpoints(1), parse_adjacency("[[]]"))
            return controller.tick(), session

        released, session = asyncio.run(scenario())
        assert released is False
        assert session.status == SessionStatus.SUSPENDED

    def test_get_state(self):
        controller = StepController(CheckpointCoordinator(), interval_ms=500)
        state = controller.get_state()
        assert state['playing'] is False
        assert state['interval_ms'] == 500
        assert state['can_step'] is False


@pytest.mark.parametrize("count", [0, 1, 4])
def test_manual_steps_needed_equals_checkpoints(count):
    async def scenario():
        coordinator = CheckpointCoordinator()
        controller = StepController(coordinator)
        session = await coordinator.start(_checkpoints(count), parse_adjacency("[]"))
        steps = 0
        while await controller.step():
            steps += 1
        return steps, session

    steps, session = asyncio.run(scenario())
    assert steps == count
    assert session.status == SessionStatus.FINISHED
