"""Partner panel endpoints: activation and content."""

from fastapi import APIRouter, BackgroundTasks, Depends
from fastapi.responses import HTMLResponse, JSONResponse, Response
from loguru import logger

from panel_bridge.api.http.deps import (
    extract_bearer_token,
    extract_query_token,
    get_reconciler,
    get_token_validator,
)
from panel_bridge.api.http.rendering import render_error, render_panel
from panel_bridge.core.errors import StorageError
from panel_bridge.core.services.identity.reconciler import IdentityReconciler
from panel_bridge.core.services.jwt.jwt_verify import TokenValidator

router = APIRouter(tags=["panels"])

ACTIVATION_TOKEN_MESSAGE = (
    "The request to activate this panel for your account was missing some "
    "information. Please try again, and contact our support team if it fails again."
)
ACTIVATION_NO_ACCOUNT_MESSAGE = (
    "You do not have an account with us, so there is nothing to show in this panel. "
    "Create an account with your administrator email and try again."
)
CONTENT_TOKEN_MESSAGE = (
    "We were unable to verify your request. Please try again, and contact our "
    "support team if it fails again."
)
CONTENT_NOT_ACTIVATED_MESSAGE = (
    "Your account is not yet activated with TribeHR panels. Activate this panel "
    "in TribeHR to see your information here."
)
CONTENT_UNKNOWN_SUBJECT_MESSAGE = (
    "Your co-worker hasn't registered with us!<br />"
    "Suggest that they register with their email address in your company's account."
)
UNAVAILABLE_MESSAGE = "The service is temporarily unavailable. Please try again later."


def _activation_error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"message": message}})


def _content_error(status_code: int, message: str) -> HTMLResponse:
    return HTMLResponse(render_error(message), status_code=status_code)


@router.api_route("/activation", methods=["GET", "POST"], response_model=None)
async def activation(
    background_tasks: BackgroundTasks,
    raw_token: str | None = Depends(extract_bearer_token),
    validator: TokenValidator = Depends(get_token_validator),
    reconciler: IdentityReconciler = Depends(get_reconciler),
) -> Response:
    """Approve or refuse activating the panel for a partner account.

    On approval every partner user of the account is reconciled in the background.
    """
    logger.info("Beginning activation workflow")
    try:
        result = validator.validate(raw_token)
        if not result.ok:
            logger.warning(f"Could not validate activation request: {result.error}")
            return _activation_error(401, ACTIVATION_TOKEN_MESSAGE)

        account = await reconciler.resolve_account(result.claims.account)
    except StorageError as e:
        logger.error(f"Activation aborted by storage failure: {e}")
        return _activation_error(503, UNAVAILABLE_MESSAGE)

    if account is None:
        logger.info(f"Not allowing activation for account: {result.claims.account}")
        return _activation_error(401, ACTIVATION_NO_ACCOUNT_MESSAGE)

    background_tasks.add_task(reconciler.reconcile_all, account)
    logger.info(f"Activation approved for account {account.id}")
    return Response(status_code=200)


@router.get("/content", response_class=HTMLResponse, response_model=None)
async def content(
    raw_token: str | None = Depends(extract_query_token),
    validator: TokenValidator = Depends(get_token_validator),
    reconciler: IdentityReconciler = Depends(get_reconciler),
) -> HTMLResponse:
    """Render the panel showing the subject user to the requesting user."""
    logger.info("Beginning content request workflow")
    try:
        result = validator.validate(raw_token)
        if not result.ok:
            logger.warning(f"Could not validate content request: {result.error}")
            return _content_error(401, CONTENT_TOKEN_MESSAGE)
        claims = result.claims

        # content requests never trigger account mapping; activation does that
        account = await reconciler.resolve_account(claims.account, allow_remote_lookup=False)
        if account is None:
            return _content_error(403, CONTENT_NOT_ACTIVATED_MESSAGE)

        subject = await reconciler.resolve_user(claims.subject, account)
        if subject is None:
            return _content_error(404, CONTENT_UNKNOWN_SUBJECT_MESSAGE)

        requester = await reconciler.resolve_user(claims.audience, account)
    except StorageError as e:
        logger.error(f"Content request aborted by storage failure: {e}")
        return _content_error(503, UNAVAILABLE_MESSAGE)

    if requester is None:
        requester = reconciler.guest_user()

    return HTMLResponse(render_panel(account, subject, requester))
