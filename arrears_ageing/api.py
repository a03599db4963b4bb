"""
Arrears Ageing API

FastAPI application exposing the derived arrears table and the rebuild job.
"""

from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from . import __version__
from .aging import ArrearsAgingEngine, ArrearsAgingStore
from .config import ArrearsConfig, get_config
from .event_hooks import ArrearsEventListener
from .events import EventDispatcher
from .jobs import ArrearsAgeingJob
from .loans import LoanRepository
from .logging_config import setup_logging
from .schedule_source import LoanNotFoundError, StorageLedgerSource
from .schemas import ArrearsAgingResponse, ArrearsListResponse, JobRunResponse, RecomputeResponse
from .storage import StorageInterface, create_storage


class ArrearsSystem:
    """Arrears service with all components initialized"""

    def __init__(self, settings: Optional[ArrearsConfig] = None,
                 storage: Optional[StorageInterface] = None, clock=None):
        self.settings = settings or get_config()
        self.storage = storage or create_storage(self.settings.database_url)

        self.loans = LoanRepository(self.storage)
        self.source = StorageLedgerSource(self.storage)
        self.store = ArrearsAgingStore(self.storage)
        self.engine = ArrearsAgingEngine(
            self.source, self.store,
            clock=clock,
            max_workers=self.settings.batch_max_workers
        )

        self.dispatcher = EventDispatcher()
        self.listener = ArrearsEventListener(self.engine, self.dispatcher)
        self.listener.register()

        self.job = ArrearsAgeingJob(self.engine)

    def close(self) -> None:
        self.listener.unregister()
        self.storage.close()


def get_system(request: Request) -> ArrearsSystem:
    return request.app.state.system


def create_app(system: Optional[ArrearsSystem] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Loan Arrears Ageing API",
        description="Derived per-loan arrears, rebuilt nightly and kept current by ledger events",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.system = system or ArrearsSystem()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check(system: ArrearsSystem = Depends(get_system)):
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "arrears_ageing",
            "version": __version__,
            "arrears_rows": system.store.count(),
        }

    @app.get("/arrears", response_model=ArrearsListResponse)
    def list_arrears(system: ArrearsSystem = Depends(get_system)):
        records = system.store.list_all()
        return ArrearsListResponse(
            count=len(records),
            records=[ArrearsAgingResponse.from_record(r) for r in records]
        )

    @app.get("/arrears/{loan_id}", response_model=ArrearsAgingResponse)
    def get_arrears(loan_id: str, system: ArrearsSystem = Depends(get_system)):
        record = system.store.get(loan_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"No arrears record for loan {loan_id}")
        return ArrearsAgingResponse.from_record(record)

    @app.post("/arrears/{loan_id}/recompute", response_model=RecomputeResponse)
    def recompute_arrears(loan_id: str, as_of: Optional[date] = None,
                          system: ArrearsSystem = Depends(get_system)):
        """Recompute one loan's arrears row from the ledger"""
        try:
            with system.storage.atomic():
                outcome = system.engine.recompute_loan(loan_id, as_of)
        except LoanNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return RecomputeResponse.build(loan_id, outcome, system.store.get(loan_id))

    @app.post("/jobs/arrears-ageing", response_model=JobRunResponse)
    def run_arrears_job(as_of: Optional[date] = None, system: ArrearsSystem = Depends(get_system)):
        """Rebuild the whole arrears table"""
        report = system.job.run(as_of)
        return JobRunResponse.from_report(report)

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    settings = get_config()
    setup_logging(settings.log_level, log_format=settings.log_format, log_file=settings.log_file)
    uvicorn.run(
        "arrears_ageing.api:create_app",
        factory=True,
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=debug,
        log_level=settings.log_level.lower()
    )
