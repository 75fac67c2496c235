"""
Action presets - reusable action callbacks for rules.

Each preset returns a callback with the action signature
action(rule_name, context), ready to put in Rule.actions or to register
by name on a RulesModule.
"""

import logging
from typing import Any, Optional

from .engine import FiringContext
from .models import RuleAction

logger = logging.getLogger(__name__)


def command_action(target: str, value: Any) -> RuleAction:
    """
    Create an action that sends a command.

    Args:
        target: Target spec (alias, item, UID or label)
        value: Command value

    Returns:
        Action callback

    Example:
        rule.actions.append(command_action("Light2", ON))
    """

    def action(rule_name: str, context: FiringContext) -> None:
        context.send_command(target, value)

    return action


def update_action(target: str, value: Any) -> RuleAction:
    """
    Create an action that updates a device's state without commanding it.

    Args:
        target: Target spec (alias, item, UID or label)
        value: New state

    Returns:
        Action callback
    """

    def action(rule_name: str, context: FiringContext) -> None:
        context.update_state(target, value)

    return action


def notify_action(message: str) -> RuleAction:
    """
    Create an action that sends a notification.

    The message may reference {rule} and {target}.

    Args:
        message: Message template

    Returns:
        Action callback

    Example:
        notify_action("Intrusion alert near {target} ({rule})")
    """

    def action(rule_name: str, context: FiringContext) -> None:
        if context.notification is None:
            logger.warning(f"Rule '{rule_name}': no notification service, message dropped")
            return
        target = str(context.event.ref) if context.event.ref else ""
        context.notification.send(message.format(rule=rule_name, target=target))

    return action


def increment_counter(storage_name: str, key: str) -> RuleAction:
    """
    Create an action that counts fires in a named storage.

    A missing counter starts at 1: count = (previous or 0) + 1.

    Args:
        storage_name: Storage to use (from the storage service)
        key: Counter key

    Returns:
        Action callback

    Example:
        increment_counter("MyStore", "AlertCount")
    """

    def action(rule_name: str, context: FiringContext) -> None:
        if context.storage is None:
            logger.warning(f"Rule '{rule_name}': no storage service, counter not updated")
            return
        storage = context.storage.get_storage(storage_name)
        previous: Optional[int] = storage.get(key)
        count = (previous or 0) + 1
        storage.put(key, count)
        logger.debug(f"Rule '{rule_name}': {storage_name}/{key} = {count}")

    return action


def sequence(*actions: RuleAction) -> RuleAction:
    """
    Combine actions into one, run in order.

    A failing action stops the ones after it; the error propagates to
    the engine, which logs it.
    """

    def action(rule_name: str, context: FiringContext) -> None:
        for step in actions:
            step(rule_name, context)

    return action
