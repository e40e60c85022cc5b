import logging

import pytest
from pydantic import ValidationError

from curtain_controller.config import (
    CurtainSettings,
    MotionConfig,
    PinConfig,
    SwitchConfig,
    WatcherConfig,
    runtime_config,
)
from curtain_controller.core.logging import setup_logging


def test_defaults():
    settings = CurtainSettings()

    assert settings.pins.switch_left == 17
    assert settings.pins.switch_right == 27
    assert settings.switch.debounce_seconds == 0.5
    assert settings.switch.active_level is False
    assert settings.motion.motor_active_high is False


def test_limit_switches_map_to_extremes():
    settings = CurtainSettings(pins=PinConfig(switch_left=5, switch_right=6))

    assert settings.limit_switches == {5: 0.0, 6: 1.0}


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CURTAIN_PINS_SWITCH_LEFT", "5")
    monkeypatch.setenv("CURTAIN_MOTION_FULL_TRAVERSAL_SECONDS", "12.5")

    assert PinConfig().switch_left == 5
    assert MotionConfig().full_traversal_seconds == 12.5


@pytest.mark.parametrize(
    "factory",
    [
        lambda: PinConfig(motor_left=-1),
        lambda: MotionConfig(full_traversal_seconds=0),
        lambda: MotionConfig(initial_position=1.5),
        lambda: SwitchConfig(debounce_seconds=-0.1),
        lambda: WatcherConfig(notify_queue_size=0),
        lambda: WatcherConfig(poll_interval=0),
    ],
)
def test_invalid_values_are_rejected(factory):
    with pytest.raises(ValidationError):
        factory()


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def test_setup_logging_writes_to_file_and_stdout(tmp_path, monkeypatch, restore_root_logger):
    log_dir = tmp_path / "logs"
    monkeypatch.setattr(runtime_config, "log_dir", str(log_dir))
    monkeypatch.setattr(runtime_config, "log_file", str(log_dir / "curtain.log"))
    monkeypatch.setattr(runtime_config, "log_level", "debug")

    root = setup_logging()
    logging.getLogger("curtain_controller.test").debug("hello from the test")
    for handler in root.handlers:
        handler.flush()

    assert root.level == logging.DEBUG
    assert {type(handler) for handler in root.handlers} == {logging.FileHandler, logging.StreamHandler}
    assert "hello from the test" in (log_dir / "curtain.log").read_text()
