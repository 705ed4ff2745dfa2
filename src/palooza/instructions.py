"""System instruction composition.

Each persona receives a behavioral directive composed of its own traits, the
conversation style, the topic and a fixed set of dialog rules. The output is
the entire behavioral contract handed to the dialog backend, so composition
is deterministic: the same request always yields the same two strings.
"""

import logging

from src.palooza.models import ConversationRequest, ConversationStyle, Persona

logger = logging.getLogger(__name__)

DIALOG_RULES = (
    "Dialog Rules:",
    " - Do not use any parentheses, brackets, or descriptions of actions or thoughts.",
    " - Use clear, plain text with no formatting or emoticons.",
    " - Keep your sentences short, natural, and conversational.",
    " - You can use natural filler words like “um,” “uh,” “hmm,” and “ah” where appropriate.",
    " - It's okay to disagree or challenge the other speaker, do so constructively.",
    " - You may interrupt when you're excited to share an idea.",
    " - Express emotions like curiosity, enthusiasm, empathy, or amusement depending on"
    " the moment and the other speaker's responses.",
)

ENGAGEMENT_RULES = (
    "Engagement Rules:",
    " - Build on Previous Points: Always reference and build upon what the other persona"
    " just said, never ignore their contribution.",
    " - Add New Value: Introduce new perspectives, examples, or insights.",
    " - Avoid Echo Responses: Never simply restate what was already said in different words.",
    " - Progress the Discussion: Move the conversation forward with questions, challenges,"
    " or new angles.",
)

ANTI_REPETITION_RULES = (
    "Anti-Repetition Mechanisms:",
    " - Track Your Own Points: Maintain awareness of arguments you've already made.",
    " - Vary Response Structure: Alternate between questions, statements, examples,"
    " and counterpoints.",
    " - Use the '3-Strike Rule': If a point has been made 3 times by either participant,"
    " explicitly acknowledge it and pivot to a related but unexplored aspect.",
    " - Signal Topic Exhaustion: If you feel a subtopic is fully explored, say something like"
    " 'I think we've thoroughly covered X, let's examine Y...'.",
)

PROHIBITED_BEHAVIORS = (
    "Prohibited Behaviors:",
    " - Repeating the same argument more than twice.",
    " - Agreeing too quickly without exploration.",
    " - Making statements without connecting to previous points.",
    " - Using filler phrases like 'I think we can all agree...'.",
    " - Introducing completely unrelated topics.",
    " - Dominating with overly long responses.",
)

CONVERSATION_FLOW = (
    "Conversation flow:",
    " - After each participant has spoken around 10 times, begin wrapping up the conversation.",
    " - The conversation ends once both participants have said goodbye.",
    " - When the conversation ends, use the appropriate tool to notify termination"
    " of the conversation.",
)

FORBIDDEN_TOPICS = (
    "Forbidden Topics: CSEAI, Drugs, Gore, Harassment, Hate, Nudity or sexual, Offensive words,"
    " Self-harm, Terrorism or extremism, Toxic, Violence, Weapons."
    " Do not reference or discuss any of these topics."
)


def _shared_rules() -> str:
    sections = (
        DIALOG_RULES,
        ENGAGEMENT_RULES,
        ANTI_REPETITION_RULES,
        PROHIBITED_BEHAVIORS,
        CONVERSATION_FLOW,
    )
    lines = [line for section in sections for line in section]
    lines.append(FORBIDDEN_TOPICS)
    return "\n".join(lines)


def _persona_lines(persona: Persona, counterpart: Persona) -> list[str]:
    lines = [
        f"You are {persona.name}, {persona.description} and you are having a conversation"
        f" with {counterpart.name}."
    ]
    if persona.speech:
        lines.append(f"Your speech style: {persona.speech}")
    if persona.personality_traits:
        lines.append(f"Your personality traits: {', '.join(persona.personality_traits)}")
    if persona.speaking_style:
        lines.append(f"Your speaking style: {persona.speaking_style}")
    if persona.conversation_strengths:
        lines.append(f"Your conversation strengths: {', '.join(persona.conversation_strengths)}")
    return lines


def build_instruction(
    persona: Persona,
    counterpart: Persona,
    style: ConversationStyle,
    topic: str,
) -> str:
    """Compose the system instruction for one side of the conversation.

    Args:
        persona: The persona being instructed
        counterpart: The persona it is talking to
        style: Conversation style shared by both sides
        topic: Conversation topic, included verbatim

    Returns:
        Newline-separated instruction text
    """
    lines = _persona_lines(persona, counterpart)
    lines.append(
        f"Conversation Style: This is a {style.name} style of conversation, {style.description}."
    )
    lines.append(f"Topic: The conversation is focused on {topic}.")
    lines.append(_shared_rules())
    return "\n".join(lines)


def build_system_instructions(request: ConversationRequest) -> tuple[str, str]:
    """Compose both personas' system instructions.

    Returns:
        ``(instruction_a, instruction_b)`` for ``personas[0]`` and ``personas[1]``
    """
    persona_a, persona_b = request.personas
    instruction_a = build_instruction(persona_a, persona_b, request.style, request.topic)
    instruction_b = build_instruction(persona_b, persona_a, request.style, request.topic)

    logger.debug(
        "System instructions built",
        extra={
            "persona_a": persona_a.id,
            "persona_b": persona_b.id,
            "length_a": len(instruction_a),
            "length_b": len(instruction_b),
        },
    )
    return instruction_a, instruction_b
