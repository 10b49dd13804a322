"""
Insight Generator Module

Turns a combined NeuroScore and the completed test results into a short
natural-language readout (summary, observations, suggestion) for the results
screen. Text is template-based; each observation is included only for the
tests that were actually run.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from utils.video_session_analyzer import TestType


@dataclass
class AlertnessInsights:
    """Readout shown beside the combined score."""
    summary: str
    observations: List[str] = field(default_factory=list)
    suggestion: str = ""

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "observations": list(self.observations),
            "suggestion": self.suggestion,
        }


class InsightGenerator:
    """
    Usage:
        generator = InsightGenerator()
        insights = generator.generate(session.combined_score(), session.results)
    """

    def __init__(self, dot_grid_rounds: int = 10):
        self.dot_grid_rounds = dot_grid_rounds

    def generate_no_data(self) -> AlertnessInsights:
        return AlertnessInsights(
            summary="Complete a test to receive your alertness analysis.",
            observations=[
                "Awaiting test data",
                "Multiple test modes available",
                "Results updated in real-time",
            ],
            suggestion="Select a test mode and start a test to begin.",
        )

    def generate(self, combined_score: int, results: Optional[Dict[TestType, object]] = None) -> AlertnessInsights:
        if not combined_score:
            return self.generate_no_data()
        results = results or {}
        simple = results.get(TestType.SIMPLE)
        dotgrid = results.get(TestType.DOTGRID)
        flash = results.get(TestType.FLASH)
        rounds = self.dot_grid_rounds

        if combined_score >= 75:
            observations = [
                simple and f"Quick reaction time ({simple.reaction_time:.0f}ms) within optimal range",
                dotgrid and f"Strong visual tracking with {dotgrid.hits}/{rounds} hits",
                flash and f"Sharp pupil response ({flash.reaction_time_ms:.0f}ms) indicates alertness",
                "Minimal movement index suggests stable focus",
            ]
            return AlertnessInsights(
                summary=("Your NeuroScore indicates high cognitive alertness and optimal reaction "
                         "performance. You are likely well-rested and ready for demanding tasks."),
                observations=[o for o in observations if o],
                suggestion="You are clear to drive. Maintain regular breaks every 2-3 hours.",
            )

        if combined_score >= 50:
            observations = [
                simple and "Reaction time slightly slower than peak performance",
                dotgrid and f"Moderate tracking accuracy ({dotgrid.hits}/{rounds} targets)",
                flash and f"Pupil reactivity shows {flash.blink_count} blinks detected",
                "Some indicators of mild cognitive load",
            ]
            return AlertnessInsights(
                summary=("Your NeuroScore shows normal alertness levels with minor variations. "
                         "Performance is adequate but may benefit from brief rest."),
                observations=[o for o in observations if o],
                suggestion="Consider a 10-minute break and hydration before extended driving.",
            )

        observations = [
            simple and f"Delayed reaction time ({simple.reaction_time:.0f}ms) exceeds safe threshold",
            dotgrid and f"Lower tracking performance with {dotgrid.misses} missed targets",
            flash and f"Slower pupil response and {flash.blink_count} blinks suggest fatigue",
            "Movement patterns suggest reduced engagement",
        ]
        return AlertnessInsights(
            summary=("Your NeuroScore indicates cognitive fatigue and reduced alertness. "
                     "This presents a safety risk for commercial driving operations."),
            observations=[o for o in observations if o],
            suggestion="Take a 15-30 minute break before starting any drive. Consider rest or shift adjustment.",
        )
