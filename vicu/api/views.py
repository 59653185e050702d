"""Shared goal lookup and response builders for the goal-centric routes."""
from __future__ import annotations

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from vicu.api.schemas.checkin import GamificationPayload, TransitionOfferPayload
from vicu.api.schemas.experiment import (
    ActionPayload,
    ExperimentDetail,
    ReminderPayload,
    RhythmPayload,
    StageProgressPayload,
    StepPayload,
)
from vicu.api.schemas.stage import StageRecommendationPayload
from vicu.core.identity import Identity
from vicu.db.models import Experiment, ExperimentAction, ExperimentCheckin
from vicu.services import cadence, gamification, goal_service, stage_machine
from vicu.services.gamification import CheckinOutcome
from vicu.services.goal_service import GoalAccessDenied, GoalNotFound
from vicu.services.recommendation_service import StageRecommendation
from vicu.services.stage_machine import StageTransition

GOAL_NOT_FOUND = "Objetivo no encontrado"
GOAL_FORBIDDEN = "No tienes acceso a este objetivo"


def load_goal(db: Session, goal_id: UUID, identity: Identity) -> Experiment:
    try:
        return goal_service.get_goal(db, goal_id, identity)
    except GoalNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=GOAL_NOT_FOUND)
    except GoalAccessDenied:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=GOAL_FORBIDDEN)


def step_payload(step: ExperimentCheckin) -> StepPayload:
    return StepPayload(
        id=step.id,
        for_stage=step.for_stage,
        status=step.status,
        step_title=step.step_title,
        step_description=step.step_description,
        effort=step.effort,
        source=step.source or "app",
        done_at=step.done_at,
    )


def action_payload(action: ExperimentAction) -> ActionPayload:
    return ActionPayload(
        id=action.id,
        channel=action.channel,
        action_type=action.action_type,
        title=action.title,
        content=action.content or "",
        status=action.status,
        suggested_order=action.suggested_order or 0,
        suggested_due_date=action.suggested_due_date,
        done_at=action.done_at,
    )


def stage_progress_payload(goal: Experiment) -> StageProgressPayload:
    progress = goal_service.stage_progress(goal)
    return StageProgressPayload(
        stage=goal.status,
        stage_label=stage_machine.STAGE_LABELS.get(goal.status, goal.status),
        completed=progress.completed,
        total=progress.total,
        percent=progress.percent,
        is_complete=progress.is_complete,
    )


def transition_payload(transition: Optional[StageTransition]) -> Optional[TransitionOfferPayload]:
    if transition is None:
        return None
    return TransitionOfferPayload(
        next_stage=transition.next_stage,
        label=transition.label,
        emoji=transition.emoji,
        is_resume=transition.is_resume,
    )


def gamification_payload(outcome: Optional[CheckinOutcome]) -> Optional[GamificationPayload]:
    if outcome is None:
        return None
    stats = outcome.stats
    return GamificationPayload(
        xp_gained=outcome.xp_gained,
        xp=stats.xp,
        level=stats.level,
        level_name=gamification.level_name(stats.level),
        level_up=outcome.level_up,
        streak_days=stats.streak_days,
        daily_checkins=stats.daily_checkins,
        daily_goal=stats.daily_goal,
        daily_goal_met=outcome.daily_goal_met,
        new_badges=outcome.new_badges,
    )


def recommendation_payload(recommendation: Optional[StageRecommendation]) -> Optional[StageRecommendationPayload]:
    if recommendation is None:
        return None
    return StageRecommendationPayload(**recommendation.model_dump())


def experiment_detail(goal: Experiment, today: Optional[date] = None) -> ExperimentDetail:
    today = today or date.today()
    rhythm = goal_service.rhythm_for_goal(goal)
    reminder = cadence.next_action_reminder(rhythm, goal_service.last_action_date(goal), today)
    return ExperimentDetail(
        id=goal.id,
        user_id=goal.user_id,
        title=goal.title,
        description=goal.description,
        experiment_type=goal.experiment_type,
        surface_type=goal.surface_type,
        status=goal.status,
        deadline=goal.deadline,
        deadline_source=goal.deadline_source,
        self_result=goal.self_result,
        streak_days=goal.streak_days or 0,
        checkins_count=goal.checkins_count or 0,
        last_checkin_at=goal.last_checkin_at,
        created_at=goal.created_at,
        rhythm=RhythmPayload(
            action_cadence=rhythm.action_cadence,
            metrics_cadence=rhythm.metrics_cadence,
            decision_cadence_days=rhythm.decision_cadence_days,
            description=cadence.format_rhythm_description(rhythm),
        ),
        suggested_checkin_cadence=cadence.calculate_suggested_cadence(
            goal.surface_type, goal.status, goal.deadline, today
        ),
        next_action_reminder=ReminderPayload(message=reminder.message, urgency=reminder.urgency),
        stage_progress=stage_progress_payload(goal),
        steps=[step_payload(step) for step in goal.checkins],
        actions=[action_payload(action) for action in goal.actions],
        recommendation=goal.recommendation,
    )
