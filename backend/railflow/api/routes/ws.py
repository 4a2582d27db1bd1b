from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from datetime import datetime, timezone
import logging

from railflow.core.realtime_manager import get_simulation_engine

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws/simulation")
async def simulation_socket(websocket: WebSocket) -> None:
	"""
	WebSocket streaming of the live simulation.

	Clients receive an initial snapshot, then one frame per simulation tick
	while the tick loop is running.
	"""
	await websocket.accept()
	engine = get_simulation_engine()
	client_id = engine.add_client(websocket)
	logger.info(f"WebSocket client {client_id} connected")

	try:
		await websocket.send_json({
			"type": "initial",
			"timestamp": datetime.now(timezone.utc).isoformat(),
			**engine.snapshot(),
		})
		while True:
			# Frames are pushed by the engine; inbound messages only keep the socket alive
			await websocket.receive_text()
	except WebSocketDisconnect:
		logger.info(f"WebSocket client {client_id} disconnected")
	except Exception as e:
		logger.error(f"WebSocket error for client {client_id}: {e}", exc_info=True)
	finally:
		engine.remove_client(client_id)
