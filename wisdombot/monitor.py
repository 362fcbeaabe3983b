import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

from wisdombot.nicknames import (
    LogSinkFn,
    Member,
    MutateFn,
    RandomPolicy,
    emit,
    pick_value,
)
from wisdombot.snacks import DUTCH_SNACKS

logger = logging.getLogger("wisdombot.monitor")

COOLDOWN_SECONDS = 5.0
MONITOR_REASON = "Automatic nickname monitoring - reverting to Dutch snack"
NUH_UH = "Nuh Uh"


@dataclass
class MonitorOutcome:
    status: str
    attempted_value: str | None = None
    reverted_to: str | None = None
    message_sent: bool = False
    message_error: str | None = None
    error: str | None = None


class NicknameMonitor:
    """Overwrites one watched member's nickname whenever they change it."""

    def __init__(
        self,
        monitored_user_id: int | None,
        blacklist: Iterable[int] = (),
        pool: Iterable[str] = DUTCH_SNACKS,
        rng: random.Random | None = None,
        cooldown_seconds: float = COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.monitored_user_id = monitored_user_id
        self.blacklist = set(blacklist)
        self.policy = RandomPolicy(tuple(pool))
        self.rng = rng or random.Random()
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self._cooldowns: dict[int, float] = {}

    def is_in_cooldown(self, member_id: int) -> bool:
        started = self._cooldowns.get(member_id)
        if started is None:
            return False
        if self.clock() - started < self.cooldown_seconds:
            return True
        self._cooldowns.pop(member_id, None)
        return False

    def start_cooldown(self, member_id: int):
        self._cooldowns[member_id] = self.clock()

    async def on_member_update(
        self,
        member: Member,
        before_nick: str | None,
        after_nick: str | None,
        *,
        guild_id: int,
        permission_granted: bool,
        self_rank: int,
        mutate: MutateFn,
        announce: Callable[[str], Awaitable[object]] | None = None,
        log_sink: LogSinkFn | None = None,
    ) -> MonitorOutcome:
        if self.monitored_user_id is None or member.member_id != self.monitored_user_id:
            return MonitorOutcome("ignored")
        if before_nick == after_nick:
            return MonitorOutcome("ignored")
        if self.is_in_cooldown(member.member_id):
            logger.info("nickname_monitor_cooldown member=%s", member.describe())
            return MonitorOutcome("cooldown")
        if guild_id in self.blacklist:
            logger.info("nickname_monitor_skipped guild_id=%s reason=blacklisted", guild_id)
            return MonitorOutcome("blacklisted")
        if not permission_granted:
            logger.info("nickname_monitor_skipped guild_id=%s reason=missing_permission", guild_id)
            return MonitorOutcome("no_permission")

        old_value = before_nick or member.display_name
        attempted = after_nick or member.display_name
        fields: dict[str, object] = {
            "User": member.describe(),
            "Guild": guild_id,
            "Old Nickname": old_value,
        }
        if member.rank >= self_rank:
            logger.info("nickname_monitor_hierarchy_blocked member=%s rank=%s self_rank=%s", member.describe(), member.rank, self_rank)
            await emit(
                log_sink,
                f"Monitored user {member.describe()} changed nickname from \"{old_value}\" to \"{attempted}\" "
                "but bot cannot revert due to role hierarchy",
                "nickname-monitor",
                {**fields, "New Nickname": attempted, "Status": "Failed - Role hierarchy"},
            )
            return MonitorOutcome("hierarchy_blocked", attempted_value=attempted)

        value = pick_value(self.policy, self.rng)
        try:
            applied = await mutate(member, value, MONITOR_REASON)
            error = "mutation rejected" if applied is False else None
        except Exception as exc:
            error = str(exc)
        if error is not None:
            logger.warning("nickname_monitor_failed member=%s value=%r error=%s", member.describe(), value, error)
            await emit(
                log_sink,
                f"Error monitoring nickname change for {member.describe()}: {error}",
                "nickname-monitor-error",
                {**fields, "Error": error, "Status": "Error"},
            )
            return MonitorOutcome("failed", attempted_value=attempted, error=error)
        self.start_cooldown(member.member_id)

        outcome = MonitorOutcome("reverted", attempted_value=attempted, reverted_to=value)
        if announce is None:
            outcome.message_error = "No main channel configured"
        else:
            try:
                await announce(NUH_UH)
                outcome.message_sent = True
            except Exception as exc:
                outcome.message_error = str(exc)
                logger.warning("nickname_monitor_announce_failed error=%s", exc)
        logger.info(
            "nickname_monitor_reverted member=%s old=%r attempted=%r reverted_to=%r",
            member.describe(),
            old_value,
            attempted,
            value,
        )
        suffix = ' and sent "Nuh Uh" message to main channel' if outcome.message_sent else " but failed to send message"
        await emit(
            log_sink,
            f"Successfully reverted monitored user {member.describe()}'s nickname to \"{value}\"{suffix}",
            "nickname-monitor",
            {
                **fields,
                "Attempted Nickname": attempted,
                "Reverted To": value,
                "Message Sent": "Yes" if outcome.message_sent else "No",
                "Message Error": outcome.message_error or "None",
                "Status": "Success",
            },
        )
        return outcome
