"""Game configuration loading and validation.

The configuration document is trusted only after ``validate_game_config``
has checked its shape and cross references. Validation stops at the first
problem and raises ``ConfigError`` describing it.
"""

import json
import logging
import re
from typing import Any, Dict, Mapping, Optional

from .entities import (
    CandyRequest,
    CandyType,
    Child,
    ConfigError,
    GameConfig,
    GameRound,
    GameSettings,
    NicknameError,
)


logger = logging.getLogger(__name__)

SUPPORTED_CONFIG_MAJOR = 2
HEX_COLOR = re.compile(r'^#[0-9A-Fa-f]{6}$')
NICKNAME_MIN_LENGTH = 2
NICKNAME_MAX_LENGTH = 50


def _positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def config_major_version(document: Mapping[str, Any]) -> Optional[int]:
    version = str((document.get('gameSettings') or {}).get('version') or '')
    try:
        return int(version.split('.')[0])
    except ValueError:
        return None


def is_config_compatible(document: Mapping[str, Any]) -> bool:
    return config_major_version(document) == SUPPORTED_CONFIG_MAJOR


def _validate_candy(rnd: int, candy: Any, seen: set) -> CandyType:
    if not isinstance(candy, Mapping):
        raise ConfigError(f'Round {rnd}: candy entries must be objects')
    name = candy.get('name')
    if not _non_empty_str(name):
        raise ConfigError(f'Round {rnd}: candy must have a valid name')
    if name in seen:
        raise ConfigError(f'Round {rnd}: duplicate candy "{name}"')
    seen.add(name)
    if not _positive_int(candy.get('quantity')):
        raise ConfigError(f'Round {rnd}: {name} quantity must be > 0')
    color = candy.get('color')
    if not isinstance(color, str) or not HEX_COLOR.match(color):
        raise ConfigError(f'Round {rnd}: {name} must have valid hex color')
    if not _non_empty_str(candy.get('emoji')):
        raise ConfigError(f'Round {rnd}: {name} must have an emoji')
    return CandyType(name=name, quantity=candy['quantity'], color=color, emoji=candy['emoji'])


def _validate_child(rnd: int, child: Any, candy_names: set, child_ids: set) -> Child:
    if not isinstance(child, Mapping):
        raise ConfigError(f'Round {rnd}: child entries must be objects')
    child_id = child.get('id')
    if not _non_empty_str(child_id):
        raise ConfigError(f'Round {rnd}: child must have a valid id')
    if child_id in child_ids:
        raise ConfigError(f'Round {rnd}: duplicate child id "{child_id}"')
    child_ids.add(child_id)

    if not isinstance(child.get('isSpecial'), bool):
        raise ConfigError(f'Round {rnd}: child {child_id} must have boolean isSpecial field')
    if not _non_empty_str(child.get('emoji')):
        raise ConfigError(f'Round {rnd}: child {child_id} must have an emoji')

    raw_requests = child.get('requests')
    if not isinstance(raw_requests, list) or not raw_requests:
        raise ConfigError(f'Round {rnd}: child {child_id} must have at least one request')

    requests = []
    requested_names = set()
    for req in raw_requests:
        name = req.get('candyName') if isinstance(req, Mapping) else None
        if not _non_empty_str(name):
            raise ConfigError(f'Round {rnd}: child {child_id} has invalid request candyName')
        if name not in candy_names:
            raise ConfigError(f'Round {rnd}: child {child_id} requests unknown candy "{name}"')
        if name in requested_names:
            raise ConfigError(f'Round {rnd}: child {child_id} requests "{name}" more than once')
        requested_names.add(name)
        if not _positive_int(req.get('quantity')):
            raise ConfigError(
                f'Round {rnd}: child {child_id} request for {name} must have quantity > 0'
            )
        requests.append(CandyRequest(candy_name=name, quantity=req['quantity']))

    hated = child.get('hatedCandy')
    if hated is not None:
        if not _non_empty_str(hated):
            raise ConfigError(f'Round {rnd}: child {child_id} has invalid hatedCandy')
        if hated not in candy_names:
            raise ConfigError(f'Round {rnd}: child {child_id} hates unknown candy "{hated}"')
        if hated in requested_names:
            raise ConfigError(f'Round {rnd}: child {child_id} both requests and hates "{hated}"')

    return Child(
        id=child_id,
        requests=tuple(requests),
        is_special=child['isSpecial'],
        emoji=child['emoji'],
        hated_candy=hated,
    )


def _validate_round(index: int, raw: Any) -> GameRound:
    expected = index + 1
    if not isinstance(raw, Mapping):
        raise ConfigError(f'Round {expected} must be an object')
    if raw.get('roundNumber') != expected:
        raise ConfigError(
            f'Round {expected} has incorrect roundNumber: expected {expected}, got {raw.get("roundNumber")}'
        )
    if not _positive_int(raw.get('timeLimit')):
        raise ConfigError(f'Round {expected}: timeLimit must be > 0')

    raw_candies = raw.get('initialCandies')
    if not isinstance(raw_candies, list) or not raw_candies:
        raise ConfigError(f'Round {expected}: must have at least one candy type')
    seen: set = set()
    candies = tuple(_validate_candy(expected, c, seen) for c in raw_candies)

    raw_children = raw.get('children')
    if not isinstance(raw_children, list) or not raw_children:
        raise ConfigError(f'Round {expected}: must have at least one child')
    child_ids: set = set()
    children = tuple(_validate_child(expected, c, seen, child_ids) for c in raw_children)

    return GameRound(
        round_number=expected,
        initial_candies=candies,
        children=children,
        time_limit=raw['timeLimit'],
    )


def validate_game_config(document: Any) -> GameConfig:
    """Validate a raw configuration document and build the typed config."""
    if not isinstance(document, Mapping):
        raise ConfigError('Invalid config structure: expected an object')
    settings = document.get('gameSettings')
    rounds = document.get('rounds')
    if not isinstance(settings, Mapping) or rounds is None:
        raise ConfigError('Invalid config structure: missing gameSettings or rounds')

    total_rounds = settings.get('totalRounds')
    if not _positive_int(total_rounds):
        raise ConfigError('Invalid totalRounds: must be > 0')
    if not _positive_int(settings.get('timeLimitPerRound')):
        raise ConfigError('Invalid timeLimitPerRound: must be > 0')
    if not settings.get('version'):
        raise ConfigError('Missing version in gameSettings')
    if not is_config_compatible(document):
        raise ConfigError(
            f'Unsupported config version {settings.get("version")}: '
            f'expected {SUPPORTED_CONFIG_MAJOR}.x'
        )

    if not isinstance(rounds, list) or not rounds:
        raise ConfigError('Config must have at least one round')
    if len(rounds) != total_rounds:
        raise ConfigError(
            f'Round count mismatch: gameSettings.totalRounds is {total_rounds} '
            f'but found {len(rounds)} rounds'
        )

    return GameConfig(
        settings=GameSettings(
            total_rounds=total_rounds,
            time_limit_per_round=settings['timeLimitPerRound'],
            version=str(settings['version']),
        ),
        rounds=tuple(_validate_round(i, r) for i, r in enumerate(rounds)),
    )


def load_game_config(path: str) -> GameConfig:
    try:
        with open(path, encoding='utf-8') as fh:
            document: Dict[str, Any] = json.load(fh)
    except FileNotFoundError:
        logger.error(f"[config-error] path={path} missing")
        raise ConfigError(f'Game configuration not found: {path}')
    except (OSError, ValueError) as exc:
        logger.error(f"[config-error] path={path} unreadable: {exc}")
        raise ConfigError(f'Game configuration is not valid JSON: {exc}')

    try:
        config = validate_game_config(document)
    except ConfigError as exc:
        logger.error(f"[config-error] path={path} {exc}")
        raise
    logger.info(
        f"[config-load] path={path} version={config.settings.version} rounds={config.settings.total_rounds}"
    )
    return config


def validate_nickname(raw: Any) -> str:
    nickname = raw.strip() if isinstance(raw, str) else ''
    if not nickname:
        raise NicknameError('Please enter a nickname')
    if len(nickname) < NICKNAME_MIN_LENGTH:
        raise NicknameError(f'Nickname must be at least {NICKNAME_MIN_LENGTH} characters')
    if len(nickname) > NICKNAME_MAX_LENGTH:
        raise NicknameError(f'Nickname must be {NICKNAME_MAX_LENGTH} characters or less')
    return nickname
