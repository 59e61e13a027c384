"""
JalSetu Kernel API — FastAPI endpoints.

A thin adapter over the DecisionEngine for:
- Complaint intake and priority scoring
- Telemetry ingestion (single and batch)
- The ticket work queue
- Ward and citywide equity
- Sensor health and water loss summaries
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from jalsetu_kernel.engine.service import DecisionEngine
from jalsetu_kernel.errors import MalformedReading, TicketStoreError, UnknownWard
from jalsetu_kernel.models.complaint import Complaint
from jalsetu_kernel.models.config import EngineConfig
from jalsetu_kernel.models.ward import Ward
from jalsetu_kernel.telemetry.classifier import parse_reading


# --- Request/Response Models ---

class ComplaintCreateRequest(BaseModel):
    ward_id: Optional[str] = None
    issue: str = ""
    location: Optional[str] = None
    created_at: Optional[datetime] = None
    sensor_reading: Optional[Dict[str, Any]] = None     # Latest reading near the complaint, if any


class WardUpsertRequest(BaseModel):
    id: str
    name: str
    population: int = 0
    avg_supply_hours: float = 0.0
    sensors: List[str] = []


class TelemetryBatchRequest(BaseModel):
    readings: List[Dict[str, Any]]


# --- Application Factory ---

def create_app(engine: Optional[DecisionEngine] = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="JalSetu Kernel API",
        description="Municipal water decision engine",
        version="0.1.0",
    )

    engine = engine or DecisionEngine.build(config=EngineConfig.from_env())
    app.state.engine = engine

    # === WARDS ===

    @app.post("/wards")
    def upsert_ward(req: WardUpsertRequest):
        """Register or update a ward and its sensors."""
        ward = Ward(
            id=req.id,
            name=req.name,
            population=req.population,
            avg_supply_hours=req.avg_supply_hours,
        )
        engine.registry.upsert_ward(ward)
        for sensor_id in req.sensors:
            engine.registry.assign_sensor(sensor_id, ward.id)
        return ward.model_dump(mode="json")

    @app.get("/wards")
    def list_wards():
        return [w.model_dump(mode="json") for w in engine.registry.list_wards()]

    # === COMPLAINTS ===

    @app.post("/complaints")
    def submit_complaint(req: ComplaintCreateRequest):
        """Score a complaint and open its ticket."""
        complaint = Complaint(
            id=f"cmp_{uuid4().hex[:12]}",
            ward_id=req.ward_id,
            issue=req.issue,
            location=req.location,
            created_at=req.created_at or engine.clock(),
        )
        reading = None
        if req.sensor_reading is not None:
            try:
                reading = parse_reading(req.sensor_reading, default_time=engine.clock())
            except MalformedReading as e:
                raise HTTPException(422, str(e))

        outcome = engine.submit_complaint(complaint, sensor_reading=reading)
        return outcome.model_dump(mode="json")

    # === TELEMETRY ===

    @app.post("/telemetry")
    def ingest_telemetry(payload: Dict[str, Any]):
        """Classify one reading; critical readings open a leak ticket."""
        try:
            outcome = engine.ingest_reading(payload)
        except MalformedReading as e:
            raise HTTPException(422, str(e))
        return outcome.model_dump(mode="json")

    @app.post("/telemetry/batch")
    def ingest_telemetry_batch(req: TelemetryBatchRequest):
        """Ingest many readings; bad readings are reported, not fatal."""
        batch = engine.ingest_readings(req.readings)
        return {
            "succeeded": batch.succeeded,
            "failed": batch.failed,
            "results": [r.model_dump(mode="json") for r in batch.results],
            "failures": [f.model_dump(mode="json") for f in batch.failures],
        }

    @app.get("/sensors/{sensor_id}/health")
    def sensor_health(sensor_id: str):
        latest = engine.latest_reading(sensor_id)
        return {
            "sensor_id": sensor_id,
            "health": engine.sensor_health(sensor_id).value,
            "last_reading": latest.model_dump(mode="json") if latest else None,
        }

    @app.get("/alerts/recent")
    def recent_alerts(limit: int = 20):
        return [a.model_dump(mode="json") for a in engine.bus.recent(limit)]

    # === TICKETS ===

    @app.get("/tickets/queue")
    def ticket_queue(limit: int = 10):
        """Open tickets, most urgent first."""
        return [q.model_dump(mode="json") for q in engine.top_priorities(limit)]

    @app.post("/tickets/{ticket_id}/close")
    def close_ticket(ticket_id: str):
        try:
            ticket = engine.close_ticket(ticket_id)
        except TicketStoreError:
            raise HTTPException(404, "Ticket not found")
        return ticket.model_dump(mode="json")

    @app.get("/tickets/verify")
    def verify_tickets():
        """Verify the ticket audit chain."""
        return {
            "integrity_valid": engine.tickets.verify_chain_integrity(),
            "total_tickets": engine.tickets.count(),
        }

    # === EQUITY ===

    @app.get("/equity")
    def citywide_equity():
        """Citywide report; ward scores are cached back onto the registry."""
        report = engine.citywide_equity()
        engine.registry.cache_equity_scores(report.wards)
        return report.model_dump(mode="json")

    @app.get("/equity/wards/{ward_id}")
    def ward_equity(ward_id: str):
        try:
            snapshot = engine.ward_equity(ward_id)
        except UnknownWard:
            raise HTTPException(404, "Ward not found")
        return snapshot.model_dump(mode="json")

    # === LEAKS ===

    @app.get("/leaks/summary")
    def leak_summary(since: Optional[datetime] = None):
        return engine.water_loss_summary(since=since).model_dump(mode="json")

    # === ENGINE ===

    @app.get("/engine/config")
    def engine_config():
        return engine.config.model_dump(mode="json")

    return app


# Default application instance
app = create_app()
