import pytest

from curtain_controller.hardware.motor import MotorDirection, MotorDriver


@pytest.fixture
def motor(mock_pin_factory):
    driver = MotorDriver(22, 23)
    yield driver
    driver.close()


def test_starts_stopped_with_both_terminals_inactive(motor):
    assert motor.direction is MotorDirection.STOP
    assert motor.left.value == 0
    assert motor.right.value == 0
    # Active low: inactive terminals sit high
    assert motor.left.pin.state
    assert motor.right.pin.state


def test_clockwise_drives_left_terminal(motor):
    motor.move(MotorDirection.CLOCKWISE)

    assert motor.direction is MotorDirection.CLOCKWISE
    assert motor.left.value == 1
    assert motor.right.value == 0
    assert not motor.left.pin.state
    assert motor.right.pin.state


def test_counterclockwise_drives_right_terminal(motor):
    motor.move(MotorDirection.COUNTERCLOCKWISE)

    assert motor.direction is MotorDirection.COUNTERCLOCKWISE
    assert motor.left.value == 0
    assert motor.right.value == 1


def test_stop_releases_both_terminals(motor):
    motor.clockwise()
    motor.move(MotorDirection.STOP)

    assert motor.direction is MotorDirection.STOP
    assert motor.left.value == 0
    assert motor.right.value == 0


def test_repeating_direction_is_idempotent(motor):
    motor.counterclockwise()
    motor.counterclockwise()

    assert motor.direction is MotorDirection.COUNTERCLOCKWISE
    assert (motor.left.value, motor.right.value) == (0, 1)


def test_active_high_polarity(mock_pin_factory):
    driver = MotorDriver(22, 23, active_high=True)
    try:
        assert not driver.left.pin.state
        driver.clockwise()
        assert driver.left.pin.state
        assert not driver.right.pin.state
    finally:
        driver.close()


def test_unknown_direction_rejected(motor):
    with pytest.raises(ValueError):
        motor.move("up")


def test_close_releases_outputs(motor):
    motor.clockwise()
    motor.close()

    assert motor.left.closed
    assert motor.right.closed
    assert motor.direction is MotorDirection.STOP
    motor.close()
