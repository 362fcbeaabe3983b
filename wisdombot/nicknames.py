import inspect
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable

from wisdombot.snacks import BATTLE_CHOICE_A, BATTLE_CHOICE_B, DUTCH_SNACKS

logger = logging.getLogger("wisdombot.nicknames")

MUTATION_REASON = "Weekly Dutch snack nickname change"

# Cumulative upper bounds, each band covers [previous bound, bound).
POLICY_BANDS: tuple[tuple[float, str], ...] = (
    (0.05, "battle"),
    (0.10, "uniform"),
    (1.0, "random"),
)


class MemberSourceError(RuntimeError):
    """The member list could not be read, so no batch can run."""


@dataclass
class Member:
    member_id: int
    rank: int
    is_bot: bool = False
    is_owner: bool = False
    display_name: str = ""
    source: object | None = field(default=None, repr=False, compare=False)

    def describe(self) -> str:
        if self.display_name:
            return f"{self.display_name} ({self.member_id})"
        return str(self.member_id)


@dataclass(frozen=True)
class UniformPolicy:
    value: str
    kind = "uniform"


@dataclass(frozen=True)
class BattlePolicy:
    choice_a: str = BATTLE_CHOICE_A
    choice_b: str = BATTLE_CHOICE_B
    kind = "battle"


@dataclass(frozen=True)
class RandomPolicy:
    pool: tuple[str, ...] = DUTCH_SNACKS
    kind = "random"

    def __post_init__(self):
        object.__setattr__(self, "pool", tuple(self.pool))
        if not self.pool:
            raise ValueError("RandomPolicy needs at least one value.")


MutationPolicy = UniformPolicy | BattlePolicy | RandomPolicy
MutateFn = Callable[[Member, str, str], Awaitable[object]]
NotifyFn = Callable[[Member, str], Awaitable[object]]
LogSinkFn = Callable[[str, str, dict[str, object]], object]


@dataclass
class BatchOptions:
    guild_id: int
    blacklist: set[int] = field(default_factory=set)
    permission_granted: bool = True
    forced_policy: MutationPolicy | None = None
    owner_id: int | None = None
    owner_escalation_enabled: bool = True


@dataclass
class BatchResult:
    applied: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    policy_kind: str | None = None
    uniform_value: str | None = None
    battle_counts: dict[str, int] = field(default_factory=dict)
    owner_notified: bool = False
    suggested_value: str | None = None

    @property
    def considered(self) -> int:
        return self.applied + self.failed + self.skipped

    def battle_winner(self) -> str | None:
        if self.policy_kind != "battle" or not self.battle_counts:
            return None
        (name_a, count_a), (name_b, count_b) = list(self.battle_counts.items())[:2]
        if count_a == count_b:
            return "TIE"
        return name_a if count_a > count_b else name_b


def choose_policy_kind(r: float) -> str:
    for upper, kind in POLICY_BANDS:
        if r < upper:
            return kind
    return POLICY_BANDS[-1][1]


def select_policy(
    pool: Iterable[str] = DUTCH_SNACKS,
    rng: random.Random | None = None,
    battle: BattlePolicy | None = None,
) -> MutationPolicy:
    """Draw the policy for a whole batch from a single random value."""
    rng = rng or random.Random()
    pool = tuple(pool)
    kind = choose_policy_kind(rng.random())
    if kind == "uniform":
        return UniformPolicy(rng.choice(pool))
    if kind == "battle":
        return battle or BattlePolicy()
    return RandomPolicy(pool)


class BattleAllocator:
    """Assigns battle sides online, always filling the smaller side first."""

    def __init__(self, policy: BattlePolicy, rng: random.Random):
        self.policy = policy
        self.rng = rng
        self.count_a = 0
        self.count_b = 0

    def _pick(self) -> str:
        if self.count_a < self.count_b:
            return self.policy.choice_a
        if self.count_b < self.count_a:
            return self.policy.choice_b
        return self.policy.choice_a if self.rng.random() < 0.5 else self.policy.choice_b

    def allocate(self) -> str:
        choice = self._pick()
        if choice == self.policy.choice_a:
            self.count_a += 1
        else:
            self.count_b += 1
        return choice

    def peek(self) -> str:
        return self._pick()

    @property
    def counts(self) -> dict[str, int]:
        return {self.policy.choice_a: self.count_a, self.policy.choice_b: self.count_b}


def pick_value(
    policy: MutationPolicy,
    rng: random.Random,
    allocator: BattleAllocator | None = None,
    consume: bool = True,
) -> str:
    if isinstance(policy, UniformPolicy):
        return policy.value
    if isinstance(policy, BattlePolicy):
        if allocator is None:
            allocator = BattleAllocator(policy, rng)
        return allocator.allocate() if consume else allocator.peek()
    return rng.choice(policy.pool)


async def read_members(source) -> list[Member]:
    """Accepts a member sequence, an awaitable, or a callable returning either."""
    try:
        if callable(source):
            source = source()
        if inspect.isawaitable(source):
            source = await source
        return list(source)
    except MemberSourceError:
        raise
    except Exception as exc:
        raise MemberSourceError(f"Could not read member list: {exc}") from exc


async def emit(log_sink: LogSinkFn | None, message: str, category: str, fields: dict[str, object]):
    if log_sink is None:
        return
    try:
        outcome = log_sink(message, category, fields)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception:
        logger.exception("log_sink_failed category=%s", category)


async def _apply(
    member: Member,
    value: str,
    mutate: MutateFn,
    reason: str,
    result: BatchResult,
):
    try:
        outcome = await mutate(member, value, reason)
    except Exception as exc:
        result.failed += 1
        result.errors.append(f"Error for {member.describe()}: {exc}")
        logger.warning("nickname_mutation_failed member=%s value=%r error=%s", member.describe(), value, exc)
        return
    if outcome is False:
        result.failed += 1
        result.errors.append(f"Error for {member.describe()}: mutation rejected")
        logger.warning("nickname_mutation_rejected member=%s value=%r", member.describe(), value)
        return
    result.applied += 1
    logger.info("nickname_mutation_applied member=%s value=%r", member.describe(), value)


def _is_owner(member: Member, options: BatchOptions) -> bool:
    if options.owner_id is not None:
        return member.member_id == options.owner_id
    return member.is_owner


async def run_batch(
    members,
    self_member: Member,
    self_rank: int,
    options: BatchOptions,
    *,
    mutate: MutateFn,
    notify: NotifyFn | None = None,
    pool: Iterable[str] = DUTCH_SNACKS,
    rng: random.Random | None = None,
    reason: str = MUTATION_REASON,
    log_sink: LogSinkFn | None = None,
) -> BatchResult:
    """Rename every member the actor outranks, following one policy per batch.

    ``members`` is a sequence of :class:`Member` or a member source (an
    awaitable or a callable returning a sequence or an awaitable). The self
    member is always processed first and is never compared against
    ``self_rank``. Only the blacklist and the permission check abort the
    batch; per-member failures are collected in ``errors``.
    """
    result = BatchResult()
    if options.guild_id in options.blacklist:
        result.errors.append(f"Guild {options.guild_id} is blacklisted")
        logger.info("nickname_batch_skipped guild_id=%s reason=blacklisted", options.guild_id)
        return result
    if not options.permission_granted:
        result.errors.append(f"Missing 'Manage Nicknames' permission in guild {options.guild_id}")
        logger.info("nickname_batch_skipped guild_id=%s reason=missing_permission", options.guild_id)
        return result

    member_list = await read_members(members)
    if not member_list:
        logger.info("nickname_batch_skipped guild_id=%s reason=no_members", options.guild_id)
        return result
    rng = rng or random.Random()
    pool = tuple(pool)
    policy = options.forced_policy or select_policy(pool, rng)
    result.policy_kind = policy.kind
    allocator = BattleAllocator(policy, rng) if isinstance(policy, BattlePolicy) else None
    if isinstance(policy, UniformPolicy):
        result.uniform_value = policy.value
    logger.info(
        "nickname_batch_start guild_id=%s policy=%s members=%s",
        options.guild_id,
        policy.kind,
        len(member_list),
    )

    await _apply(self_member, pick_value(policy, rng, allocator), mutate, reason, result)

    for member in member_list:
        if member.member_id == self_member.member_id:
            continue
        if member.rank >= self_rank:
            if _is_owner(member, options) and options.owner_escalation_enabled and notify is not None:
                suggested = pick_value(policy, rng, allocator, consume=False)
                try:
                    delivered = await notify(member, suggested)
                except Exception as exc:
                    delivered = False
                    logger.warning("owner_suggestion_failed member=%s error=%s", member.describe(), exc)
                if delivered is not False:
                    result.owner_notified = True
                    result.suggested_value = suggested
                    logger.info("owner_suggestion_sent member=%s value=%r", member.describe(), suggested)
            else:
                logger.info("nickname_skipped_hierarchy member=%s rank=%s self_rank=%s", member.describe(), member.rank, self_rank)
            result.skipped += 1
            continue
        await _apply(member, pick_value(policy, rng, allocator), mutate, reason, result)

    if allocator is not None:
        result.battle_counts = allocator.counts
    logger.info(
        "nickname_batch_done guild_id=%s applied=%s failed=%s skipped=%s policy=%s",
        options.guild_id,
        result.applied,
        result.failed,
        result.skipped,
        result.policy_kind,
    )
    await emit(
        log_sink,
        f"Nickname change complete for guild {options.guild_id}",
        "nicknames",
        {
            "Applied": result.applied,
            "Failed": result.failed,
            "Skipped": result.skipped,
            "Policy": result.policy_kind,
            "Group Snack": result.uniform_value,
            "Battle": ", ".join(f"{k}: {v}" for k, v in result.battle_counts.items()) or None,
        },
    )
    return result


ABORTED_HEADING = "❌ Nicknames were not changed."


def format_batch_summary(result: BatchResult, heading: str = "✅ Nicknames changed successfully!") -> str:
    if result.errors and result.policy_kind is None:
        heading = ABORTED_HEADING
    lines = [
        heading,
        f"Success: {result.applied}",
        f"Failed: {result.failed}",
        f"Skipped: {result.skipped}",
    ]
    if result.errors and result.policy_kind is None:
        lines.append(f"⚠️ {result.errors[0]}")
    if result.policy_kind == "uniform":
        lines.append(f'🎉 GROUP SNACK EVENT! Everyone was named "{result.uniform_value}" 🎉')
    if result.policy_kind == "battle":
        counts = " | ".join(f"{name}: {count}" for name, count in result.battle_counts.items())
        lines.append(f"⚔️ BATTLE RESULTS: {counts} | Winner: {result.battle_winner()}! 🏆")
    if result.owner_notified:
        lines.append(f'\n👑 Server owner suggestion: "{result.suggested_value}" (sent via DM)')
    return "\n".join(lines)
