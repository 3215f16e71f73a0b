# charactergen/adapters/mock_adapter.py

"""
Mock Adapter: a deterministic provider with no network I/O and no credentials.

The reply is picked by keyword from the last message's content
(case-insensitive, first match wins):

    portrait → values → personality details → equipment → spells → background → traits

Anything else yields `{"error": "Unknown request type"}` rather than an
exception. A last message that is not from the user yields `{}`.

Replies go through the same rate limiter, schema validation and retry path
as the live adapters, so tests exercise production code.
"""

import copy
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from charactergen.adapters.base import Message, ProviderClient
from charactergen.config import ProviderConfig
from charactergen.rate_limiter import RateLimiter
from charactergen.validation import Schema

logger = logging.getLogger(__name__)

UNKNOWN_REQUEST = {"error": "Unknown request type"}

_BACKGROUND = {
    "background": (
        "In the port city of Silverkeep, where salt winds carry tales of distant lands, Thalia Stormwind "
        "grew up between two worlds: her human father's merchant stalls and her elven mother's theater. "
        "When fire swept the theater during a performance, Thalia played her mother's enchanted flute and "
        "her music calmed the crowd and led them to safety. Since then she has travelled the realm collecting "
        "songs and stories, bending unjust rules whenever the innocent need protecting."
    ),
    "personality_traits": [
        "Charismatic performer who uses humor to diffuse tension",
        "Fiercely protective of artistic freedom",
        "Curious collector of tales and musical traditions",
        "Impulsive when someone needs help",
    ],
}

_TRAITS = {
    "traits": [
        {"trait": "Silver Tongue", "category": "social", "description": "Talks her way past guards with a joke and a wink."},
        {"trait": "Reckless Rescuer", "category": "combat", "description": "Charges in first when an innocent is threatened."},
        {"trait": "Song Hoarder", "category": "roleplay", "description": "Asks every stranger for a song from their homeland."},
    ],
}

_VALUES = {
    "ideals": [
        {"ideal": "Freedom", "manifestation": "Refuses to perform for anyone who silences other artists."},
        {"ideal": "Compassion", "manifestation": "Shares her earnings with struggling performers."},
    ],
    "bonds": [
        {"bond": "Her mother's enchanted flute", "manifestation": "Never lets it out of reach, even in battle."},
        {"bond": "The Silverkeep theater troupe", "manifestation": "Sends them a share of every reward."},
    ],
    "flaws": [
        {"flaw": "Cannot resist an audience", "manifestation": "Starts a performance at the worst possible moment."},
        {"flaw": "Distrusts authority", "manifestation": "Lies to officials even when the truth would help."},
    ],
}

_EQUIPMENT = {
    "weapons": [
        {"name": "Rapier", "damage": "1d8 piercing"},
        {"name": "Hand Crossbow", "damage": "1d6 piercing"},
    ],
    "armor": [
        {"name": "Studded Leather Armor", "ac": 12},
    ],
    "adventuring_gear": ["Backpack", "Bedroll", "Flute", "Waterskin"],
}

_SPELLS = {
    "cantrips": [
        {"name": "Vicious Mockery", "school": "Enchantment"},
        {"name": "Minor Illusion", "school": "Illusion"},
    ],
    "level_1_spells": [
        {"name": "Healing Word", "school": "Evocation"},
        {"name": "Sleep", "school": "Enchantment"},
    ],
}

_PORTRAIT = {
    "prompt": (
        "Fantasy portrait of a half-elf bard with windswept auburn hair, holding an ornate silver flute, "
        "wearing a colourful travelling coat, warm lantern light, cinematic composition, detailed digital art"
    ),
}

# Order matters: a personality-details prompt also mentions traits, and so on.
RESPONSES = (
    ("portrait", _PORTRAIT),
    ("values", _VALUES),
    ("personality details", _VALUES),
    ("equipment", _EQUIPMENT),
    ("spells", _SPELLS),
    ("background", _BACKGROUND),
    ("traits", _TRAITS),
)


class MockAdapter(ProviderClient):
    """
    Canned-response adapter for development and tests.
    """

    name = "mock"
    requires_credentials = False

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(config or ProviderConfig(model="mock"), rate_limiter=rate_limiter, sleep=sleep)

    def _send(
        self,
        messages: List[Message],
        system_prompt: Optional[str],
        schema: Optional[Schema],
        options: Dict[str, Any],
    ) -> Dict[str, Any]:
        last = messages[-1]
        if last["role"] != "user":
            return {}

        content = last["content"].lower()
        for keyword, response in RESPONSES:
            if keyword in content:
                logger.info(f"[MockAdapter] matched '{keyword}'")
                return copy.deepcopy(response)

        logger.info("[MockAdapter] no keyword matched")
        return dict(UNKNOWN_REQUEST)

    def test_connection(self) -> bool:
        return True


# ────── Adapter Export ──────
def get_adapter(config: Optional[ProviderConfig] = None, **options) -> ProviderClient:
    """
    Factory method used by the provider registry.
    """
    return MockAdapter(config, **options)
