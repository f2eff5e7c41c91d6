from fastapi import APIRouter, Depends, Form, Request
from starlette.responses import JSONResponse

from qhome_pay.config import PaymentFlow, settings
from qhome_pay.exceptions import VnpayConfigError
from qhome_pay.logging_config import logger, txn_ref_ctx
from qhome_pay.vnpay import VnpaySigner, extract_params, resolve_client_ip

router = APIRouter()


def get_signer() -> VnpaySigner:
    return VnpaySigner(settings.vnpay_config())


def parse_flow(flow: str):
    try:
        return PaymentFlow(flow)
    except ValueError:
        return None


def client_ip(request: Request) -> str:
    remote = request.client.host if request.client else None
    return resolve_client_ip(request.headers.get("X-Forwarded-For"), remote)


# -----------------------
# CREATE PAYMENT URL
# -----------------------
@router.post("/{flow}/create")
def create_payment(
        flow: str,
        request: Request,
        order_id: int = Form(...),
        order_info: str = Form(...),
        amount: str = Form(...),
        signer: VnpaySigner = Depends(get_signer)
):
    payment_flow = parse_flow(flow)
    if payment_flow is None:
        return JSONResponse(status_code=400, content={"error": f"Unknown payment flow: {flow}"})

    try:
        link = signer.build_payment_url(
            order_id,
            order_info,
            amount,
            client_ip=client_ip(request),
            flow=payment_flow,
        )
    except VnpayConfigError as e:
        logger.error("VNPay misconfigured: %s", e.message)
        return JSONResponse(status_code=500, content=e.to_dict())
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    return {
        "payment_url": link.payment_url,
        "txn_ref": link.txn_ref
    }


# -----------------------
# GATEWAY RETURN / CALLBACK
# -----------------------
@router.get("/{flow}/return")
def payment_return(
        flow: str,
        request: Request,
        signer: VnpaySigner = Depends(get_signer)
):
    if parse_flow(flow) is None:
        return JSONResponse(status_code=400, content={"error": f"Unknown payment flow: {flow}"})

    # repeated keys keep their first value
    params = extract_params(request.query_params)
    token = txn_ref_ctx.set(params.get("vnp_TxnRef", ""))
    try:
        result = signer.verify_callback(params)
    except VnpayConfigError as e:
        logger.error("VNPay misconfigured: %s", e.message)
        return JSONResponse(status_code=500, content=e.to_dict())
    finally:
        txn_ref_ctx.reset(token)

    return JSONResponse(
        status_code=200 if result.success else 400,
        content=result.model_dump(mode="json")
    )
