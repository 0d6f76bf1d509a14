"""Transaction CRUD, sell validation and local-to-account migration."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ...db import Database
from ...schemas import (
    MigrationSchema,
    SellValidationRequest,
    SellValidationSchema,
    TransactionCreateRequest,
    TransactionSchema,
    TransactionUpdateRequest,
)
from ...services.lots import InsufficientSharesError, TransactionType
from ...services.migration import migrate_transactions
from ...services.repository import LocalTransactionRepository, RepositoryError, SqlTransactionRepository
from ...services.transactions import TransactionDraft, TransactionNotFoundError, TransactionService
from ..dependencies import (
    InternalAuth,
    RequestContext,
    get_database,
    get_local_repository,
    get_transaction_service,
    require_user,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[InternalAuth])


def insufficient_shares(exc: InsufficientSharesError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={
            "message": str(exc),
            "symbol": exc.symbol,
            "requested": float(exc.requested),
            "available": float(exc.available),
        },
    )


def storage_failure(exc: RepositoryError) -> HTTPException:
    logger.error("Transaction store failure: %s", exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Transaction store unavailable")


@router.get("/transactions", response_model=list[TransactionSchema])
async def get_transactions(
    symbol: str | None = Query(default=None, max_length=20),
    service: TransactionService = Depends(get_transaction_service),
) -> list[TransactionSchema]:
    try:
        transactions = await service.list_transactions(symbol)
    except RepositoryError as exc:
        raise storage_failure(exc) from exc
    return [TransactionSchema.from_domain(tx) for tx in transactions]


@router.post("/transactions/validate-sell", response_model=SellValidationSchema)
async def post_validate_sell(
    payload: SellValidationRequest,
    service: TransactionService = Depends(get_transaction_service),
) -> SellValidationSchema:
    try:
        result = await service.validate_sell(payload.symbol, payload.quantity, exclude_id=payload.exclude_id)
    except RepositoryError as exc:
        raise storage_failure(exc) from exc
    return SellValidationSchema.from_domain(result)


@router.post("/transactions/migrate", response_model=MigrationSchema)
async def post_migrate(
    context: RequestContext = Depends(require_user),
    source: LocalTransactionRepository = Depends(get_local_repository),
    database: Database = Depends(get_database),
) -> MigrationSchema:
    target = SqlTransactionRepository(database, context.user_id)
    try:
        result = await migrate_transactions(source, target)
    except RepositoryError as exc:
        raise storage_failure(exc) from exc
    return MigrationSchema.from_domain(result)


@router.get("/transactions/{transaction_id}", response_model=TransactionSchema)
async def get_transaction(
    transaction_id: str,
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionSchema:
    try:
        tx = await service.get_transaction(transaction_id)
    except TransactionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryError as exc:
        raise storage_failure(exc) from exc
    return TransactionSchema.from_domain(tx)


@router.post("/transactions", response_model=TransactionSchema, status_code=status.HTTP_201_CREATED)
async def post_transaction(
    payload: TransactionCreateRequest,
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionSchema:
    draft = TransactionDraft(
        symbol=payload.symbol,
        type=TransactionType(payload.type),
        quantity=payload.quantity,
        price_per_share=payload.price_per_share,
        date=payload.date,
        fees=payload.fees,
        notes=payload.notes,
        tags=tuple(payload.tags),
    )
    try:
        tx = await service.create_transaction(draft)
    except InsufficientSharesError as exc:
        raise insufficient_shares(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryError as exc:
        raise storage_failure(exc) from exc
    return TransactionSchema.from_domain(tx)


@router.put("/transactions/{transaction_id}", response_model=TransactionSchema)
async def put_transaction(
    transaction_id: str,
    payload: TransactionUpdateRequest,
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionSchema:
    changes = payload.model_dump(exclude_unset=True)
    try:
        tx = await service.update_transaction(transaction_id, changes)
    except TransactionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InsufficientSharesError as exc:
        raise insufficient_shares(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryError as exc:
        raise storage_failure(exc) from exc
    return TransactionSchema.from_domain(tx)


@router.delete("/transactions/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transaction(
    transaction_id: str,
    service: TransactionService = Depends(get_transaction_service),
) -> Response:
    try:
        await service.delete_transaction(transaction_id)
    except TransactionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InsufficientSharesError as exc:
        raise insufficient_shares(exc) from exc
    except RepositoryError as exc:
        raise storage_failure(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
