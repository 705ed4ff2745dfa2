"""Prebuilt voice pools for Gemini Live speech synthesis."""

import random

ADVANCED_VOICES_MALE = (
    "Orus", "Puck", "Charon", "Fenrir", "Enceladus", "Iapetus", "Umbriel", "Algieba",
    "Rasalgethi", "Alnilam", "Schedar", "Achird", "Zubenelgenubi", "Sadachbia", "Sadaltager",
)
ADVANCED_VOICES_FEMALE = (
    "Aoede", "Leda", "Zephyr", "Kore", "Callirrhoe", "Autonoe", "Despina", "Erinome",
    "Laomedeia", "Achernar", "Gacrux", "Pulcherrima", "Vindemiatrix", "Sulafat",
)
VOICES_MALE = ("Orus", "Puck", "Charon", "Fenrir")
VOICES_FEMALE = ("Aoede", "Leda", "Zephyr", "Kore")

DEFAULT_VOICE = "Kore"


def voice_pool(category: str | None, advanced: bool) -> tuple[str, ...]:
    """Voices eligible for a persona's voice category."""
    if category == "male":
        return ADVANCED_VOICES_MALE if advanced else VOICES_MALE
    if category == "female":
        return ADVANCED_VOICES_FEMALE if advanced else VOICES_FEMALE
    return (DEFAULT_VOICE,)


def choose_voice(
    category: str | None, advanced: bool, rng: random.Random | None = None
) -> str:
    """Pick a voice at random from the category's pool.

    Re-rolled on every call; a persona does not keep its voice across sessions.
    """
    return (rng or random).choice(voice_pool(category, advanced))
