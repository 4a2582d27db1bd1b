from . import network, simulation, ws

__all__ = [
	"network", "simulation", "ws",
]
