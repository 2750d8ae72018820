"""Grammar reference content."""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class TenseRule:
    """One tense on the cheat sheet."""
    name: str
    usage: str
    structure: str
    example: str
    color: str = "white"


TENSES: Tuple[TenseRule, ...] = (
    TenseRule("Simple Present", "Habits, general truths",
              "Subject + Verb (s/es)", "She plays the piano.", "cyan"),
    TenseRule("Present Continuous", "Actions happening now",
              "Subject + am/is/are + Verb-ing", "They are watching TV.", "green"),
    TenseRule("Present Perfect", "Past actions with present relevance",
              "Subject + have/has + V3 (Past Participle)", "I have finished my homework.", "magenta"),
    TenseRule("Simple Past", "Completed past actions",
              "Subject + V2 (Past Form)", "He visited Paris last year.", "yellow"),
    TenseRule("Future Simple", "Predictions, promises",
              "Subject + will + Verb", "I will call you later.", "red"),
)
