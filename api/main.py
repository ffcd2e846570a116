import json
import logging

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from scipy.linalg import LinAlgError

from dyn_app.services import (FrequencySweepService, ModalService, StructureFactory,
                              TimeSimulationService)
from dyn_core.linalg import FactorizationError

logger = logging.getLogger(__name__)

app = FastAPI(title="structdyn")

origins = [
    "http://127.0.0.1:5500",
    "http://localhost:5500",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _build_model(payload: dict):
    model_req = payload.get("model_req")
    if not model_req:
        raise HTTPException(status_code=400, detail="Missing model_req.")
    return StructureFactory.create(model_req)


def _run(func, payload: dict):
    """Map caller mistakes to 400 and numerical failures to 422."""
    try:
        return func(payload)
    except HTTPException:
        raise
    except (FactorizationError, LinAlgError) as e:
        logger.warning("Numerical failure: %s", e)
        raise HTTPException(status_code=422, detail=f"Numerical failure: {e}")
    except (ValueError, KeyError, TypeError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid request: {e}")


# === WebSocket Endpoint ===
@app.websocket("/ws/simulate")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    logger.info("Client connected via WebSocket")

    try:
        data = await websocket.receive_text()
        payload = json.loads(data)

        model = StructureFactory.create(payload.get("model_req", {}))
        simulator = TimeSimulationService()
        async for result in simulator.stream(model, payload.get("sim_req", {})):
            await websocket.send_json(result)

    except WebSocketDisconnect:
        logger.info("Client disconnected.")
        return
    except (ValueError, KeyError, TypeError, FactorizationError, LinAlgError) as e:
        logger.warning("Simulation error: %s", e)
        await websocket.send_json({"type": "ERROR", "message": str(e)})

    await websocket.close()


# === REST API ===
# CPU-bound handlers are plain functions so they run in the threadpool, off the event loop.
@app.post("/modal")
def calculate_modal_properties(payload: dict):
    def handler(p):
        model = _build_model(p)
        return ModalService().run(model, n_modes=p.get("n_modes"))
    return _run(handler, payload)


@app.post("/time-history")
def calculate_time_history(payload: dict):
    def handler(p):
        return TimeSimulationService().run(_build_model(p), p.get("sim_req", {}))
    return _run(handler, payload)


@app.post("/frequency-sweep")
def calculate_frequency_sweep(payload: dict):
    def handler(p):
        return FrequencySweepService().run(_build_model(p), p.get("sweep_req", {}))
    return _run(handler, payload)
