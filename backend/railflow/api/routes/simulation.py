from typing import Any, Dict
import logging

from fastapi import APIRouter, HTTPException

from railflow.core.config import settings
from railflow.core.models import TrainStatus
from railflow.core.realtime_manager import get_simulation_engine
from railflow.core.twin_schema import DelayRequest, RecommendationPlan, SpeedRequest, StatusRequest, TickRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{settings.API_PREFIX}/simulation", tags=["simulation"])


@router.get("/state")
async def get_state() -> Dict[str, Any]:
	return get_simulation_engine().snapshot()


@router.post("/pause")
async def toggle_pause() -> Dict[str, Any]:
	engine = get_simulation_engine()
	async with engine.lock:
		paused = engine.toggle_pause()
	return {"isPaused": paused}


@router.post("/speed")
async def set_speed(payload: SpeedRequest) -> Dict[str, Any]:
	engine = get_simulation_engine()
	async with engine.lock:
		engine.set_speed(payload.multiplier)
	return {"speed": engine.clock.speed_multiplier}


@router.post("/reset")
async def reset() -> Dict[str, Any]:
	engine = get_simulation_engine()
	async with engine.lock:
		return engine.reset()


@router.post("/tick")
async def tick(payload: TickRequest) -> Dict[str, Any]:
	"""Advance the simulation manually by an amount of real time."""
	engine = get_simulation_engine()
	async with engine.lock:
		return engine.tick(payload.elapsed_seconds)


@router.put("/trains/{train_id}/status")
async def set_train_status(train_id: str, payload: StatusRequest) -> Dict[str, Any]:
	engine = get_simulation_engine()
	async with engine.lock:
		try:
			train = engine.set_train_status(train_id, TrainStatus(payload.status))
		except KeyError:
			raise HTTPException(status_code=404, detail=f"Unknown train {train_id}")
	return train.to_dict()


@router.post("/trains/{train_id}/delay")
async def report_delay(train_id: str, payload: DelayRequest) -> Dict[str, Any]:
	"""Stop a train and request a recovery plan for it."""
	engine = get_simulation_engine()
	async with engine.lock:
		try:
			engine.report_delay(train_id, payload.delay_minutes)
		except KeyError:
			raise HTTPException(status_code=404, detail=f"Unknown train {train_id}")
		if payload.reason:
			logger.info(f"Delay reported for {train_id}: {payload.reason}")
		return {"status": "optimizing", "train": engine.get_train(train_id).to_dict()}


@router.post("/actions")
async def apply_actions(plan: RecommendationPlan) -> Dict[str, Any]:
	"""Apply an externally decided plan to the live trains."""
	engine = get_simulation_engine()
	async with engine.lock:
		outcomes = engine.apply_actions(plan.actions)
	return {"summary": plan.summary, "outcomes": [o.model_dump() for o in outcomes]}
