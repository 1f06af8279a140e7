"""Entity routes - Enriched blocks, transactions and addresses with their graph edges."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from chainstream.api.deps import get_db
from chainstream.schemas.api import (
    AddressOut,
    AddressRef,
    BlockDetail,
    SmartContractOut,
    TokenOut,
    TransactionOut,
    TransactionRef,
)
from chainstream.services.data_service import DataService

router = APIRouter(tags=["entities"])


@router.get("/blocks/{block_number}", response_model=BlockDetail)
def get_block(block_number: int, db: Session = Depends(get_db)):
    """Get a block with its raw data, summary and transaction list."""
    service = DataService(db)
    block = service.get_block(block_number)
    if not block:
        raise HTTPException(status_code=404, detail=f"Block {block_number} not found")

    detail = BlockDetail.model_validate(block)
    detail.transactions = [TransactionRef.model_validate(t) for t in service.get_block_transactions(block.id)]
    return detail


@router.get("/transactions/{transaction_hash}", response_model=TransactionOut)
def get_transaction(transaction_hash: str, db: Session = Depends(get_db)):
    """Get a transaction and the addresses that participated in it."""
    service = DataService(db)
    transaction = service.get_transaction(transaction_hash)
    if not transaction:
        raise HTTPException(status_code=404, detail=f"Transaction '{transaction_hash}' not found")

    out = TransactionOut.model_validate(transaction)
    out.addresses = [AddressRef.model_validate(a) for a in service.get_transaction_addresses(transaction.id)]
    return out


@router.get("/addresses/{address_hash}", response_model=AddressOut)
def get_address(
    address_hash: str,
    limit: int = Query(100, ge=1, le=500, description="Number of linked transactions to return"),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Get an address with its interaction graph edges (most recent first)."""
    service = DataService(db)
    address = service.get_address(address_hash)
    if not address:
        raise HTTPException(status_code=404, detail=f"Address '{address_hash}' not found")

    out = AddressOut.model_validate(address)
    out.is_contract = bool(((address.raw_data or {}).get("info") or {}).get("is_contract"))
    out.transactions = [
        TransactionRef.model_validate(t)
        for t in service.get_address_transactions(address.id, limit=limit, offset=offset)
    ]
    return out


@router.get("/smart-contracts/{address_hash}", response_model=SmartContractOut)
def get_smart_contract(address_hash: str, db: Session = Depends(get_db)):
    """Get the fetched contract metadata (ABI, source, proxy info) for a contract address."""
    contract = DataService(db).get_smart_contract(address_hash)
    if not contract:
        raise HTTPException(status_code=404, detail=f"Smart contract '{address_hash}' not found")
    return contract


@router.get("/tokens/{address_hash}", response_model=TokenOut)
def get_token(address_hash: str, db: Session = Depends(get_db)):
    """Get the fetched token metadata (supply, holders, market data) for a token contract."""
    token = DataService(db).get_token(address_hash)
    if not token:
        raise HTTPException(status_code=404, detail=f"Token '{address_hash}' not found")
    return token
