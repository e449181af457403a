from pydantic import BaseModel
from datetime import date, datetime
from typing import Optional, List


class ActivityPointResponse(BaseModel):
    date: date
    value: int
    kind: str  # 'login' | 'task' | 'assessment' | 'interaction'


class TaskProgressPointResponse(BaseModel):
    date: date
    created: int
    completed: int
    pending: int


class MetricSummaryResponse(BaseModel):
    total_tasks: int
    completed_tasks: int
    pending_tasks: int
    overdue_tasks: int
    task_completion_rate: float
    assessment_count: int
    assessment_progress: float
    overall_progress: float
    total_sessions: int
    average_session_duration: float  # minutes
    interaction_count: int
    velocity_score: int
    daily_activity: List[ActivityPointResponse] = []
    task_progress: List[TaskProgressPointResponse] = []


class PillarProgressResponse(BaseModel):
    pillar_key: str
    pillar_name: str
    current_score: float
    previous_score: float
    trend: str  # 'up' | 'down' | 'stable'
    change: float
    last_updated: Optional[datetime] = None
    assessment_count: int = 0


class TrendResponse(BaseModel):
    current: float
    previous: float
    change: float
    trend: str
    sample_size: int = 0


class StreakResponse(BaseModel):
    current_streak_days: int
    longest_streak_days: int
    active_days_in_window: int
    window_days: int
    consistency_score: int
    last_active_day: Optional[date] = None
    is_at_risk: bool
    message: str
    celebration: Optional[str] = None


class JourneyStageResponse(BaseModel):
    stage: str
    progress: float
    description: str
    completed_milestones: List[str] = []
    next_milestones: List[str] = []
    estimated_time_to_next: str


class InsightResponse(BaseModel):
    id: str
    kind: str
    severity: str  # 'low' | 'medium' | 'high' | 'critical'
    confidence: int
    title: str
    description: str
    recommendation: str
    data_points: List[str] = []
    actionable: bool = True
    timeframe: str = ""
    expected_outcome: str = ""


class AnalyticsSummaryResponse(BaseModel):
    """Full analytics aggregate for one user and one time range."""
    user_id: str
    time_range: str
    generated_for: date
    record_version: Optional[str] = None
    overall_progress: float
    task_completion_rate: float
    assessment_progress: float
    login_streak: int
    consistency_score: int
    metrics: MetricSummaryResponse
    pillars_progress: List[PillarProgressResponse]
    mood_trend: TrendResponse
    sentiment_trend: TrendResponse
    average_mood: str
    streak: StreakResponse
    journey_stage: JourneyStageResponse
    insights: List[InsightResponse] = []


class JourneyResponse(BaseModel):
    user_id: str
    generated_for: date
    overall_progress: float
    journey_stage: JourneyStageResponse


class InsightListResponse(BaseModel):
    user_id: str
    generated_for: date
    insights: List[InsightResponse]
    critical_count: int
