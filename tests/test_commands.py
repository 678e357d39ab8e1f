import pytest

from medbox_relay.application.commands import CommandPublisher
from medbox_relay.domain.models import DeviceConfig


@pytest.mark.asyncio
async def test_send_control_publishes_on_commands_topic(bus, topics):
    publisher = CommandPublisher(bus, topics)
    cmd = await publisher.send_control(" unlock ")

    assert cmd.action == "unlock"
    assert bus.published == [("smartmedbox/commands", {"type": "control", "action": "unlock"})]


@pytest.mark.asyncio
@pytest.mark.parametrize("action", ["", "   ", None])
async def test_send_control_requires_action(bus, topics, action):
    publisher = CommandPublisher(bus, topics)
    with pytest.raises(ValueError):
        await publisher.send_control(action)
    assert bus.published == []


@pytest.mark.asyncio
async def test_config_payload_only_carries_device_fields(bus, topics):
    publisher = CommandPublisher(bus, topics)
    await publisher.publish_config(DeviceConfig(wifi_ssid="clinic", wifi_password="s3cret"))

    assert bus.published == [
        ("smartmedbox/config", {"type": "config", "servoTimeout": 10000, "lockRFIDOutsideReminder": False})
    ]
