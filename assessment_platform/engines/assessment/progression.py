"""
Progression policy: maps a step and a score to the level awarded and to
whether the user may go on, or is barred from further attempts.
"""

from typing import Optional

from pydantic import BaseModel

from assessment_platform.engines.assessment.levels import FINAL_STEP, Level, levels_for_step


class Progression(BaseModel):
    """Outcome of a finished step."""

    level_achieved: Optional[Level]
    can_proceed_to_next_step: bool
    blocks_retake: bool

    class Config:
        frozen = True


class ProgressionPolicy:
    """
    Score thresholds, applied the same way at every step:

    - below 25: the previous step's upper level (step 1: none, and the
      user is barred from retaking)
    - 25-49: the step's lower level
    - 50-74: the step's upper level
    - 75 and above: the upper level, and the next step unlocks
      (there is nothing after step 3)
    """

    FAIL_BELOW = 25
    UPPER_LEVEL_FROM = 50
    PROCEED_FROM = 75

    @staticmethod
    def score(correct: int, total: int) -> int:
        """
        Percentage of correct answers rounded half up, 0-100.

        Integer arithmetic keeps 12.5 -> 13 and 62.5 -> 63 exact.
        """
        if total <= 0:
            raise ValueError("total must be positive")
        if not 0 <= correct <= total:
            raise ValueError("correct must be between 0 and total")
        return (200 * correct + total) // (2 * total)

    @classmethod
    def evaluate(cls, step: int, score: int) -> Progression:
        if not 0 <= score <= 100:
            raise ValueError(f"score must be within 0-100, got {score}")
        lower, upper = levels_for_step(step)

        if score < cls.FAIL_BELOW:
            if step == 1:
                return Progression(level_achieved=None, can_proceed_to_next_step=False, blocks_retake=True)
            _, previous_upper = levels_for_step(step - 1)
            return Progression(
                level_achieved=previous_upper, can_proceed_to_next_step=False, blocks_retake=False
            )
        if score < cls.UPPER_LEVEL_FROM:
            return Progression(level_achieved=lower, can_proceed_to_next_step=False, blocks_retake=False)
        if score < cls.PROCEED_FROM:
            return Progression(level_achieved=upper, can_proceed_to_next_step=False, blocks_retake=False)
        return Progression(
            level_achieved=upper,
            can_proceed_to_next_step=step < FINAL_STEP,
            blocks_retake=False,
        )


def progression(step: int, score: int) -> Progression:
    return ProgressionPolicy.evaluate(step, score)
