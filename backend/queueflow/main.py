# queueflow/main.py
from fastapi import FastAPI
from queueflow.database import Base, engine
from queueflow.endpoints.queue import router as queue_router
from queueflow.models import clinic  # noqa: F401  registers tables with Base

app = FastAPI(title="QueueFlow API", version="1.0.0")


@app.on_event("startup")
async def startup_event():
    # Create database tables
    Base.metadata.create_all(bind=engine)


# Include HTTP routers
app.include_router(queue_router)


@app.get("/")
def root():
    return {"message": "API is running"}
