import pytest
from conftest import client_error

from ec2cli.exceptions import AwsApiError, TimeoutError, UnexpectedStateError
from ec2cli.waiter import (
    NOT_FOUND,
    RUNNING_TRANSITIONS,
    TERMINATION_TRANSITIONS,
    ReadinessWaiter,
    Transition,
    transition,
    wait_for_ready,
)


def _state(name: str) -> dict:
    return {"Reservations": [{"Instances": [{"InstanceId": "i-1", "State": {"Name": name}}]}]}


def _ping(status: str | None) -> dict:
    if status is None:
        return {"InstanceInformationList": []}
    return {"InstanceInformationList": [{"InstanceId": "i-1", "PingStatus": status}]}


@pytest.fixture
def waiter(ec2_factory, ssm_factory, clock, settings) -> ReadinessWaiter:
    return ReadinessWaiter(ec2_factory, ssm_factory, clock, settings)


class TestTransitions:
    def test_running_table(self):
        assert transition(RUNNING_TRANSITIONS, "i-1", "pending", "running") is Transition.WAIT
        assert transition(RUNNING_TRANSITIONS, "i-1", "running", "running") is Transition.DONE
        assert transition(RUNNING_TRANSITIONS, "i-1", NOT_FOUND, "running") is Transition.WAIT

    @pytest.mark.parametrize("state", ["stopping", "stopped", "shutting-down", "terminated"])
    def test_running_rejects(self, state):
        with pytest.raises(UnexpectedStateError) as exc_info:
            transition(RUNNING_TRANSITIONS, "i-1", state, "running")
        assert exc_info.value.state == state
        assert exc_info.value.instance_id == "i-1"

    def test_termination_table(self):
        assert TERMINATION_TRANSITIONS["terminated"] is Transition.DONE
        assert TERMINATION_TRANSITIONS[NOT_FOUND] is Transition.DONE
        assert TERMINATION_TRANSITIONS["shutting-down"] is Transition.WAIT

    def test_termination_rejects_pending(self):
        with pytest.raises(UnexpectedStateError):
            transition(TERMINATION_TRANSITIONS, "i-1", "pending", "terminated")


class TestWaitForReady:
    @pytest.mark.asyncio
    async def test_returns_first_ready_result(self, clock):
        results = iter([None, 1, 2, 3])

        async def poll():
            return next(results)

        value = await wait_for_ready(
            poll, lambda v: v >= 2, clock=clock, timeout=100, interval=5
        )

        assert value == 2
        assert clock.sleeps == [5, 5]

    @pytest.mark.asyncio
    async def test_timeout(self, clock):
        async def poll():
            return None

        with pytest.raises(TimeoutError, match="widget"):
            await wait_for_ready(
                poll, lambda v: True, clock=clock, timeout=20, interval=5, description="widget"
            )

        assert clock.sleeps == [5, 5, 5, 5]

    @pytest.mark.asyncio
    async def test_poll_errors_abort(self, clock):
        async def poll():
            raise UnexpectedStateError("i-1", "stopped", "running")

        with pytest.raises(UnexpectedStateError):
            await wait_for_ready(poll, lambda v: True, clock=clock, timeout=20, interval=5)
        assert clock.sleeps == []


class TestInstanceState:
    @pytest.mark.asyncio
    async def test_state_name(self, waiter, ec2):
        ec2.describe_instances.return_value = _state("pending")
        assert await waiter.get_instance_state("i-1") == "pending"
        ec2.describe_instances.assert_called_once_with(InstanceIds=["i-1"])

    @pytest.mark.asyncio
    async def test_not_found_error(self, waiter, ec2):
        ec2.describe_instances.side_effect = client_error("InvalidInstanceID.NotFound")
        assert await waiter.get_instance_state("i-1") == NOT_FOUND

    @pytest.mark.asyncio
    async def test_empty_reservations(self, waiter, ec2):
        ec2.describe_instances.return_value = {"Reservations": []}
        assert await waiter.get_instance_state("i-1") == NOT_FOUND

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, waiter, ec2):
        ec2.describe_instances.side_effect = client_error("UnauthorizedOperation")
        with pytest.raises(AwsApiError):
            await waiter.get_instance_state("i-1")


class TestWaitForRunning:
    @pytest.mark.asyncio
    async def test_pending_then_running(self, waiter, ec2, clock):
        ec2.describe_instances.side_effect = [
            client_error("InvalidInstanceID.NotFound"),
            _state("pending"),
            _state("running"),
        ]

        await waiter.wait_for_running("i-1")

        assert ec2.describe_instances.call_count == 3
        assert clock.sleeps == [5.0, 5.0]

    @pytest.mark.asyncio
    async def test_unexpected_state(self, waiter, ec2):
        ec2.describe_instances.side_effect = [_state("pending"), _state("stopped")]

        with pytest.raises(UnexpectedStateError) as exc_info:
            await waiter.wait_for_running("i-1")
        assert exc_info.value.state == "stopped"
        assert exc_info.value.expected == "running"

    @pytest.mark.asyncio
    async def test_timeout(self, waiter, ec2, clock):
        ec2.describe_instances.return_value = _state("pending")

        with pytest.raises(TimeoutError):
            await waiter.wait_for_running("i-1", timeout=30)
        assert clock.time == 30


class TestWaitForTerminated:
    @pytest.mark.asyncio
    async def test_shutting_down_then_terminated(self, waiter, ec2, clock):
        ec2.describe_instances.side_effect = [_state("shutting-down"), _state("terminated")]

        await waiter.wait_for_terminated("i-1")

        assert clock.sleeps == [5.0]

    @pytest.mark.asyncio
    async def test_not_found_is_done_without_more_polls(self, waiter, ec2, clock):
        ec2.describe_instances.side_effect = client_error("InvalidInstanceID.NotFound")

        await waiter.wait_for_terminated("i-1")

        assert ec2.describe_instances.call_count == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_uses_settings_timeout(self, waiter, ec2, clock, settings):
        ec2.describe_instances.return_value = _state("shutting-down")

        with pytest.raises(TimeoutError):
            await waiter.wait_for_terminated("i-1")
        assert clock.time == settings.terminate_timeout


class TestWaitForAgent:
    @pytest.mark.asyncio
    async def test_online(self, waiter, ssm, clock):
        ssm.describe_instance_information.side_effect = [
            _ping(None),
            _ping("ConnectionLost"),
            _ping("Online"),
        ]

        await waiter.wait_for_agent_ready("i-1")

        assert clock.sleeps == [10.0, 10.0]
        ssm.describe_instance_information.assert_called_with(
            Filters=[{"Key": "InstanceIds", "Values": ["i-1"]}]
        )

    @pytest.mark.asyncio
    async def test_timeout(self, waiter, ssm):
        ssm.describe_instance_information.return_value = _ping(None)

        with pytest.raises(TimeoutError, match="SSM agent on i-1"):
            await waiter.wait_for_agent_ready("i-1", timeout=60)

    @pytest.mark.asyncio
    async def test_api_error(self, waiter, ssm):
        ssm.describe_instance_information.side_effect = client_error("AccessDeniedException")

        with pytest.raises(AwsApiError):
            await waiter.wait_for_agent_ready("i-1")
