from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from .api.routes import network, simulation, ws
from .core.config import settings
from .core.realtime_manager import get_simulation_engine

# Configure logging
logging.basicConfig(
	level=logging.INFO,
	format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(start_loop: bool = True) -> FastAPI:

	app = FastAPI(
		title=settings.APP_NAME,
		description="Rail network digital twin: train motion, routing and disruption handling (FastAPI)",
		version="0.1.0",
	)

	app.add_middleware(
		CORSMiddleware,
		allow_origins=settings.cors_origins,
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)

	app.include_router(network.router)  # exposes /api/network/*
	app.include_router(simulation.router)  # exposes /api/simulation/*
	app.include_router(ws.router, tags=["ws"])  # exposes /ws/simulation

	@app.on_event("startup")
	async def on_startup() -> None:
		engine = get_simulation_engine()
		stats = engine.topology.get_network_stats()
		logger.info(
			f"Network loaded: {stats['stations']} stations, {stats['segments']} segments, "
			f"{len(engine.trains)} trains (ENV={settings.ENV})"
		)
		if start_loop:
			await engine.start()

	@app.on_event("shutdown")
	async def on_shutdown() -> None:
		await get_simulation_engine().stop()

	@app.get("/health")
	def health() -> dict:
		return {"status": "ok"}

	@app.get("/")
	def root() -> dict:
		return {"message": f"{settings.APP_NAME} backend is running"}

	return app


app = create_app()
