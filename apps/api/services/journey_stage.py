"""
Journey Stage Classifier

Maps aggregate progress onto one of five ordered life-cycle stages:

    discovery -> activation -> development -> mastery -> maintenance

Rules are evaluated in order and the first match wins:

    discovery    overall_progress < 10 and total_entries < 5
    activation   overall_progress < 30 and active_pillar_count < 3
    development  overall_progress < 70
    mastery      overall_progress < 90
    maintenance  otherwise

The classifier holds no state. Every call re-derives the stage, so a value
hovering on a boundary can flip between calls. Callers that want stable
output can pass the previously shown stage and a hysteresis margin; with a
margin of 0 (the default) the previous stage is ignored.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class JourneyStageName(str, Enum):
    DISCOVERY = "discovery"
    ACTIVATION = "activation"
    DEVELOPMENT = "development"
    MASTERY = "mastery"
    MAINTENANCE = "maintenance"

    @property
    def order(self) -> int:
        return STAGE_ORDER.index(self)


STAGE_ORDER = [
    JourneyStageName.DISCOVERY,
    JourneyStageName.ACTIVATION,
    JourneyStageName.DEVELOPMENT,
    JourneyStageName.MASTERY,
    JourneyStageName.MAINTENANCE,
]

DISCOVERY_MAX_PROGRESS = 10
DISCOVERY_MAX_ENTRIES = 5
ACTIVATION_MAX_PROGRESS = 30
ACTIVATION_MAX_PILLARS = 3
DEVELOPMENT_MAX_PROGRESS = 70
MASTERY_MAX_PROGRESS = 90


STAGE_DETAILS = {
    JourneyStageName.DISCOVERY: {
        "description": "Exploring the platform and identifying development areas",
        "completed_milestones": ["Created profile", "First login"],
        "next_milestones": ["Complete first assessment", "Set a first goal"],
        "estimated_time_to_next": "1-2 weeks",
    },
    JourneyStageName.ACTIVATION: {
        "description": "Activating pillars and starting the development process",
        "completed_milestones": ["First assessment", "Activated pillars"],
        "next_milestones": ["Consistent activity", "Build routines"],
        "estimated_time_to_next": "2-4 weeks",
    },
    JourneyStageName.DEVELOPMENT: {
        "description": "Active development work with regular progress",
        "completed_milestones": ["Established routines", "Continuous activity"],
        "next_milestones": ["Deepen knowledge", "Reach intermediate goals"],
        "estimated_time_to_next": "1-3 months",
    },
    JourneyStageName.MASTERY: {
        "description": "Refining skills and reaching advanced goals",
        "completed_milestones": ["High scores", "Advanced goals"],
        "next_milestones": ["Expertise in focus areas", "Mentoring others"],
        "estimated_time_to_next": "3-6 months",
    },
    JourneyStageName.MAINTENANCE: {
        "description": "Sustaining excellence and sharing knowledge",
        "completed_milestones": ["Expertise reached", "Stable results"],
        "next_milestones": ["Continuous improvement", "New challenges"],
        "estimated_time_to_next": "Ongoing",
    },
}


@dataclass
class JourneyStage:
    stage: JourneyStageName
    progress: float  # 0-100, local to the stage's band
    description: str
    completed_milestones: List[str] = field(default_factory=list)
    next_milestones: List[str] = field(default_factory=list)
    estimated_time_to_next: str = ""


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def stage_for(overall_progress: float, active_pillar_count: int, total_entries: int) -> JourneyStageName:
    """First-match stage rule, without hysteresis."""
    if overall_progress < DISCOVERY_MAX_PROGRESS and total_entries < DISCOVERY_MAX_ENTRIES:
        return JourneyStageName.DISCOVERY
    if overall_progress < ACTIVATION_MAX_PROGRESS and active_pillar_count < ACTIVATION_MAX_PILLARS:
        return JourneyStageName.ACTIVATION
    if overall_progress < DEVELOPMENT_MAX_PROGRESS:
        return JourneyStageName.DEVELOPMENT
    if overall_progress < MASTERY_MAX_PROGRESS:
        return JourneyStageName.MASTERY
    return JourneyStageName.MAINTENANCE


def stage_progress(stage: JourneyStageName, overall_progress: float) -> float:
    """Overall progress rescaled to the stage's own band, clamped to 0-100."""
    p = overall_progress
    if stage == JourneyStageName.DISCOVERY:
        local = p * 10
    elif stage == JourneyStageName.ACTIVATION:
        local = p / ACTIVATION_MAX_PROGRESS * 100
    elif stage == JourneyStageName.DEVELOPMENT:
        local = (p - ACTIVATION_MAX_PROGRESS) / (DEVELOPMENT_MAX_PROGRESS - ACTIVATION_MAX_PROGRESS) * 100
    elif stage == JourneyStageName.MASTERY:
        local = (p - DEVELOPMENT_MAX_PROGRESS) / (MASTERY_MAX_PROGRESS - DEVELOPMENT_MAX_PROGRESS) * 100
    else:
        local = 100.0
    return round(_clamp(local), 1)


def classify_stage(
    overall_progress: float,
    active_pillar_count: int,
    total_entries: int,
    previous_stage: Optional[JourneyStageName] = None,
    hysteresis: float = 0.0,
) -> JourneyStage:
    """
    Classify the user's journey stage.

    With `previous_stage` and a positive `hysteresis`, a stage change is only
    accepted once progress has crossed the boundary by more than the margin;
    otherwise the previous stage is kept.
    """
    overall_progress = overall_progress or 0.0
    stage = stage_for(overall_progress, active_pillar_count, total_entries)

    if previous_stage is not None and hysteresis > 0 and stage != previous_stage:
        # Re-evaluate with progress pulled back toward the previous stage
        if stage.order > previous_stage.order:
            damped = stage_for(overall_progress - hysteresis, active_pillar_count, total_entries)
        else:
            damped = stage_for(overall_progress + hysteresis, active_pillar_count, total_entries)
        if damped == previous_stage:
            stage = previous_stage

    details = STAGE_DETAILS[stage]
    return JourneyStage(
        stage=stage,
        progress=stage_progress(stage, overall_progress),
        description=details["description"],
        completed_milestones=list(details["completed_milestones"]),
        next_milestones=list(details["next_milestones"]),
        estimated_time_to_next=details["estimated_time_to_next"],
    )
