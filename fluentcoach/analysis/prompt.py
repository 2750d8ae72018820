"""Instruction templates for transcript analysis."""

from ..models.preferences import Level

PERSONAS = {
    "general": "Daily conversation",
    "restaurant": "Roleplay as: a friendly waiter at a busy restaurant taking the student's order",
    "interview": "Roleplay as: a hiring manager conducting a job interview with the student",
    "travel": "Roleplay as: an airport and hotel clerk helping the student with their trip",
    "medical": "Roleplay as: a doctor at a clinic asking the student about their symptoms",
}

LEVEL_GUIDANCE = {
    Level.BEGINNER: (
        "Focus on basic errors (verb agreement, tense, articles, word order). "
        "Explain in very simple English. Be generous: a clear message with small slips scores 60 or more."
    ),
    Level.INTERMEDIATE: (
        "Point out grammar errors and unnatural phrasing. "
        "Expect connected sentences and a range of tenses when scoring."
    ),
    Level.ADVANCED: (
        "Also flag awkward collocations, register and idiom. "
        "Score against near-native fluency; reserve 90+ for polished, natural speech."
    ),
}


def persona_for(roleplay: str) -> str:
    """Scenario description used in the instruction for ``roleplay``."""
    return PERSONAS.get(roleplay, f"Roleplay as: {roleplay}")


def build_system_prompt(level: Level, roleplay: str, conversational: bool) -> str:
    """Role-conditioned instruction selecting persona, difficulty and output mode.

    Args:
        level: Student level used to calibrate tips and score
        roleplay: Scenario identifier
        conversational: Whether to also ask for an in-character reply
    """
    level = Level.parse(level)
    if conversational:
        reply_schema = '"reply": "your next line in the conversation, in character"'
        reply_rule = (
            f"You are also the conversation partner. Write \"reply\" as one or two natural sentences "
            f"that continue the dialogue in character ({persona_for(roleplay)}) at a {level.value} level. "
            f"\"reply\" must be a non-empty string."
        )
    else:
        reply_schema = '"reply": null'
        reply_rule = "This is not a conversation: \"reply\" must be exactly null. Never omit the key."

    return f"""
You are an expert English teacher. Analyze the user's speech transcript.

CONTEXT:
- Student Level: {level.value} (Adjust your tips and score accordingly). {LEVEL_GUIDANCE[level]}
- Scenario: {persona_for(roleplay)}.

Return ONLY a JSON object with this exact structure (no markdown, no extra text):
{{
  "grammar_corrections": [
    {{ "original": "substring of error", "correction": "corrected substring", "explanation": "brief reason" }}
  ],
  "fluency_score": integer from 0 to 100 (baselined on {level.value} level complexity),
  "tips": ["tip focused on {level.value} level", "tip 2"],
  "positive_feedback": "one sentence of praise relevant to the {roleplay} context",
  {reply_schema}
}}

RULES:
- "fluency_score" is always present and is an integer between 0 and 100 inclusive.
- If the English is perfect for the {level.value} level, "grammar_corrections" must be an empty list []. Never omit it.
- "positive_feedback" is never empty.
- {reply_rule}
""".strip()


def build_user_prompt(text: str) -> str:
    return f'Analyze this text: "{text}"'


def build_messages(text: str, level: Level, roleplay: str, conversational: bool) -> list:
    """System + user chat messages for one analysis request."""
    return [
        {"role": "system", "content": build_system_prompt(level, roleplay, conversational)},
        {"role": "user", "content": build_user_prompt(text)},
    ]
