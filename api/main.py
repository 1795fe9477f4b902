from fastapi import FastAPI

from api.routes import router

app = FastAPI(
    title="QueryWatch API",
    version="0.1.0",
    description="Ad-hoc query runs over configured data sources, scheduled checks and failing-check digests",
)
app.include_router(router)
