from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from qhome_pay.config import settings
from qhome_pay.logging_config import configure_logging
from qhome_pay.payments import routes as payments

configure_logging()

app = FastAPI(title="QhomeBase Pay")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(payments.router, prefix="/payment/vnpay", tags=["vnpay"])


@app.get("/")
def home():
    return {"message": f"{settings.SERVICE_NAME} running successfully!"}
