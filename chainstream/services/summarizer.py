"""Natural-language summaries of fetched chain payloads.

Pure functions: the same payload always yields the same text, and no
I/O happens here. Output is capped at ``MAX_SUMMARY_LENGTH`` characters.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional

MAX_SUMMARY_LENGTH = 2000

WEI_DECIMALS = 18
GWEI_DECIMALS = 9


def to_eth(value: Any, decimals: int = WEI_DECIMALS) -> Decimal:
    """Convert a wei-denominated string or number into a Decimal unit amount."""
    if value is None or str(value).strip() == "":
        return Decimal(0)
    try:
        return Decimal(str(value)) / (Decimal(10) ** decimals)
    except InvalidOperation:
        return Decimal(0)


def _fmt(amount: Decimal, places: int = 6) -> str:
    quantized = round(float(amount), places)
    return f"{quantized:g}" if quantized else "0"


def _format_timestamp(value: Any) -> str:
    if not value:
        return "unknown time"
    try:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return str(value)
    return ts.strftime("%B %d, %Y at %H:%M:%S UTC")


def _format_bytes(size: Any) -> str:
    if not size:
        return "0 bytes"
    value = float(size)
    units = ["bytes", "KB", "MB", "GB"]
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2)} {units[index]}"


def _items(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    raw = data.get(key)
    if isinstance(raw, dict):
        raw = raw.get("items")
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, dict)]


def _nested_hash(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("hash")
    return None


def _bounded(parts: List[str]) -> str:
    text = " ".join(part for part in parts if part)
    if len(text) <= MAX_SUMMARY_LENGTH:
        return text
    return text[: MAX_SUMMARY_LENGTH - 3].rstrip() + "..."


def summarize_block(data: Dict[str, Any]) -> str:
    data = data or {}
    info = data.get("info") or {}
    parts: List[str] = []

    parts.append(f"Block {info.get('height')} ({info.get('hash')}) was mined on {_format_timestamp(info.get('timestamp'))}.")

    miner = info.get("miner") or {}
    miner_name = miner.get("name") or miner.get("ens_domain_name") or "unknown miner"
    parts.append(f"It was mined by {miner_name} ({miner.get('hash')}).")

    parts.append(
        f"The block contains {info.get('transactions_count')} transactions "
        f"and {info.get('withdrawals_count')} withdrawals."
    )
    if info.get("gas_used_percentage") is not None:
        parts.append(
            f"It has a size of {_format_bytes(info.get('size'))} and used "
            f"{round(float(info['gas_used_percentage']), 2)}% of its gas limit."
        )

    parts.append(
        f"The base fee was {_fmt(to_eth(info.get('base_fee_per_gas'), GWEI_DECIMALS), 2)} gwei "
        f"with {_fmt(to_eth(info.get('burnt_fees')))} ETH burnt."
    )
    parts.append(f"Total transaction fees were {_fmt(to_eth(info.get('transaction_fees')))} ETH.")

    transactions = _items(data, "transactions")
    if transactions:
        total = Decimal(0)
        failed = 0
        contract_calls = 0
        addresses = set()
        for tx in transactions:
            total += to_eth(tx.get("value"))
            if tx.get("status") != "ok" and tx.get("result") != "success":
                failed += 1
            for side in ("from", "to"):
                hash_ = _nested_hash(tx.get(side))
                if hash_:
                    addresses.add(hash_.lower())
            if isinstance(tx.get("to"), dict) and tx["to"].get("is_contract"):
                contract_calls += 1

        parts.append(f"Across all transactions, {_fmt(total)} ETH was transferred.")
        if failed:
            parts.append(f"{len(transactions) - failed} transactions succeeded and {failed} failed.")
        parts.append(f"The block involved {len(addresses)} unique addresses.")
        if contract_calls:
            parts.append(f"{contract_calls} transactions were contract calls.")

    withdrawals = _items(data, "withdrawals")
    if withdrawals:
        withdrawn = sum((to_eth(w.get("amount")) for w in withdrawals), Decimal(0))
        validators = {w.get("validator_index") for w in withdrawals if w.get("validator_index") is not None}
        parts.append(f"Withdrawals totaled {_fmt(withdrawn)} ETH from {len(validators)} unique validators.")

    return _bounded(parts)


def summarize_transaction(data: Dict[str, Any]) -> str:
    data = data or {}
    info = data.get("info") or {}
    parts: List[str] = []

    parts.append(f"Transaction {info.get('hash')} was executed on {_format_timestamp(info.get('timestamp'))}.")
    parts.append(f"The transaction was {'successful' if info.get('status') == 'ok' else 'failed'}.")
    if info.get("revert_reason"):
        parts.append(f"It failed with reason: {info['revert_reason']}.")
    parts.append(f"It was included in block {info.get('block_number')} at position {info.get('position')}.")

    sender = info.get("from") or {}
    recipient = info.get("to") or {}
    parts.append(f"It was sent from {sender.get('name') or sender.get('ens_domain_name') or 'an address'} ({sender.get('hash')}).")
    kind = "contract" if recipient.get("is_contract") else "address"
    label = recipient.get("name") or recipient.get("ens_domain_name")
    target = f"{label} ({recipient.get('hash')})" if label else f"{recipient.get('hash')}"
    parts.append(f"It was sent to the {kind} {target}.")

    value = to_eth(info.get("value"))
    if value > 0:
        parts.append(f"The transaction transferred {_fmt(value)} ETH.")

    gas_used, gas_limit = info.get("gas_used"), info.get("gas_limit")
    if gas_used and gas_limit and float(gas_limit) > 0:
        efficiency = round(float(gas_used) / float(gas_limit) * 100, 2)
        parts.append(f"It used {int(gas_used):,} gas out of {int(gas_limit):,} limit ({efficiency}% efficiency).")

    fee = info.get("fee")
    if isinstance(fee, dict):
        parts.append(f"The total transaction fee was {_fmt(to_eth(fee.get('value')))} ETH.")
    if info.get("gas_price"):
        parts.append(f"The gas price was {_fmt(to_eth(info['gas_price'], GWEI_DECIMALS), 2)} gwei.")

    types = info.get("transaction_types") or []
    if types:
        parts.append(f"This transaction involved: {', '.join(map(str, types))}.")

    transfers = _items(data, "token_transfers")
    if transfers:
        symbols = sorted({str((t.get("token") or {}).get("symbol")) for t in transfers if (t.get("token") or {}).get("symbol")})
        line = f"It included {len(transfers)} token transfers"
        parts.append(f"{line} of {', '.join(symbols[:5])}." if symbols else f"{line}.")

    return _bounded(parts)


def summarize_address(data: Dict[str, Any]) -> str:
    data = data or {}
    info = data.get("info") or {}
    counters = data.get("counters") or {}
    parts: List[str] = []

    kind = "a smart contract" if info.get("is_contract") else "a standard EOA (Externally Owned Account)"
    parts.append(f"Address {info.get('hash')} is {kind}.")
    if info.get("name"):
        parts.append(f"It is known as '{info['name']}'.")
    if info.get("ens_domain_name"):
        parts.append(f"It is associated with the ENS name '{info['ens_domain_name']}'.")
    parts.append(f"It currently holds {_fmt(to_eth(info.get('coin_balance')))} ETH.")
    if info.get("is_scam"):
        parts.append("Warning: This address has been flagged as a potential scam.")
    if info.get("public_tags"):
        parts.append(f"It has public tags including: {', '.join(map(str, info['public_tags']))}.")
    if counters:
        parts.append(
            f"The address has executed {counters.get('transactions_count')} transactions and been involved "
            f"in {counters.get('token_transfers_count')} token transfers."
        )

    own_hash = (info.get("hash") or "").lower()
    transactions = _items(data, "transactions")
    if transactions:
        sent = received = Decimal(0)
        sent_count = received_count = 0
        counterparties = set()
        for tx in transactions:
            sender = (_nested_hash(tx.get("from")) or "").lower()
            recipient = (_nested_hash(tx.get("to")) or "").lower()
            value = to_eth(tx.get("value"))
            if sender == own_hash:
                sent += value
                sent_count += 1
                if recipient:
                    counterparties.add(recipient)
            elif recipient == own_hash:
                received += value
                received_count += 1
                if sender:
                    counterparties.add(sender)
        parts.append(
            f"In total, it has sent {_fmt(sent, 4)} ETH across {sent_count} transactions and received "
            f"{_fmt(received, 4)} ETH from {received_count} transactions."
        )
        parts.append(f"It has interacted with {len(counterparties)} unique addresses.")

    holdings = []
    for item in _items(data, "token_balances"):
        symbol = (item.get("token") or {}).get("symbol")
        if symbol:
            holdings.append(str(symbol))
    if holdings:
        parts.append(f"Current token holdings include: {', '.join(holdings[:5])}.")

    return _bounded(parts)


def summarize_smart_contract(data: Dict[str, Any]) -> str:
    data = data or {}
    address = data.get("address_hash") or (data.get("info") or {}).get("hash") or "unknown"
    name = data.get("name")
    parts: List[str] = []

    if data.get("proxy_type"):
        intro = f"Address {address} is a {data['proxy_type']} proxy contract"
        if name:
            intro += f" named {name}"
        implementations = data.get("implementations") or []
        names = [impl.get("name") or impl.get("address") or impl.get("address_hash") for impl in implementations if isinstance(impl, dict)]
        if names:
            intro += f" that delegates execution to {', '.join(str(n) for n in names)}"
        parts.append(intro + ", designed with an upgradeable architecture.")
    else:
        label = f" named {name}" if name else ""
        parts.append(f"Address {address} is a direct implementation contract{label} with an immutable design.")

    if data.get("language") and data.get("compiler_version"):
        line = f"The contract was developed in {data['language']} and compiled using {data['compiler_version']}"
        if data.get("optimization_enabled"):
            runs = data.get("optimization_runs")
            line += ". The code has been optimized for gas efficiency" + (f" with {runs} optimization runs" if runs else "")
        parts.append(line + ".")

    source = data.get("source_code")
    if source:
        parts.append(f"The implementation spans {source.count(chr(10)) + 1:,} lines of source code.")

    abi = data.get("abi") or []
    functions = sum(1 for entry in abi if isinstance(entry, dict) and entry.get("type") == "function")
    events = sum(1 for entry in abi if isinstance(entry, dict) and entry.get("type") == "event")
    if functions or events:
        parts.append(f"Its interface exposes {functions} callable functions and {events} events.")

    if data.get("is_verified"):
        parts.append("The source code is verified and publicly available for audit.")
    else:
        parts.append("The contract remains unverified, meaning its source code is not publicly available for audit.")

    return _bounded(parts)


# (upper bound, label) pairs; the last label applies above every bound
HOLDER_TIERS = [
    (100, "Niche Token"),
    (1_000, "Emerging Token"),
    (10_000, "Established Token"),
    (100_000, "Popular Token"),
    (1_000_000, "Major Token"),
    (None, "Blue Chip Token"),
]
MARKET_CAP_TIERS = [
    (1_000_000, "Micro Cap"),
    (10_000_000, "Small Cap"),
    (100_000_000, "Mid Cap"),
    (1_000_000_000, "Large Cap"),
    (None, "Mega Cap"),
]
RISK_TAGS = ("blocked", "phish", "hack", "exploit")


def _tier(value: float, tiers: List[tuple]) -> str:
    for bound, label in tiers:
        if bound is None or value < bound:
            return label
    return tiers[-1][1]


def _compact(amount: Decimal) -> str:
    value = float(amount)
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")):
        if value >= threshold:
            return f"{round(value / threshold, 1)}{suffix}"
    return _fmt(amount, 2)


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None or str(value).strip() == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def summarize_token(data: Dict[str, Any]) -> str:
    data = data or {}
    info = data.get("info") or {}
    counters = data.get("counters") or {}
    parts: List[str] = []

    name = info.get("name") or "Unknown Token"
    symbol = info.get("symbol") or "N/A"
    address = info.get("address") or info.get("address_hash") or data.get("address_hash") or "unknown"
    parts.append(f"{name} ({symbol}) is a {info.get('type') or 'Unknown'} token deployed at address {address}.")

    holders = _decimal(info.get("holders_count") or info.get("holders"))
    if holders is not None:
        parts.append(f"The token has {int(holders):,} holders, placing it in the '{_tier(float(holders), HOLDER_TIERS)}' category.")

    try:
        decimals = int(info.get("decimals") or WEI_DECIMALS)
    except (TypeError, ValueError):
        decimals = WEI_DECIMALS
    supply = _decimal(info.get("total_supply"))
    if supply is not None:
        parts.append(f"It has a total supply of {_compact(supply / (Decimal(10) ** decimals))} tokens.")

    price = _decimal(info.get("exchange_rate"))
    if price is not None and price > 0:
        parts.append(f"The token is currently priced at ${round(float(price), 6)} USD.")
    volume = _decimal(info.get("volume_24h"))
    if volume is not None:
        parts.append(f"Daily trading volume stands at ${_compact(volume)}.")
    market_cap = _decimal(info.get("circulating_market_cap"))
    if market_cap is not None:
        parts.append(
            f"With a circulating market capitalization of ${_compact(market_cap)}, "
            f"it ranks as a '{_tier(float(market_cap), MARKET_CAP_TIERS)}' asset."
        )

    transfer_count = _decimal(counters.get("transfers_count"))
    if transfer_count is not None:
        parts.append(f"The token has recorded {int(transfer_count):,} total transfers.")

    transfers = _items(data, "transfers")[:50]
    if transfers:
        participants = set()
        flagged = 0
        for transfer in transfers:
            for side in ("from", "to"):
                endpoint = transfer.get(side) or {}
                if endpoint.get("hash"):
                    participants.add(endpoint["hash"].lower())
                tags = (endpoint.get("metadata") or {}).get("tags") or []
                names = [str(tag.get("name") or "").lower() for tag in tags if isinstance(tag, dict)]
                if any(marker in tag_name for tag_name in names for marker in RISK_TAGS):
                    flagged += 1
        parts.append(f"Recent transfer patterns show involvement of {len(participants)} unique addresses.")
        if flagged:
            parts.append(f"Risk assessment reveals {flagged} transfers involving addresses flagged for suspicious activity.")
        else:
            parts.append("Risk analysis shows no immediate red flags in recent transfer patterns.")

    instances = _items(data, "instances")
    if instances:
        parts.append(f"The token collection includes {len(instances)} unique instances, indicating NFT or collectible functionality.")

    return _bounded(parts)


SUMMARIZERS: Dict[str, Callable[[Dict[str, Any]], str]] = {
    "block": summarize_block,
    "transaction": summarize_transaction,
    "address": summarize_address,
    "smart_contract": summarize_smart_contract,
    "token": summarize_token,
}


def summarize(entity_type: str, data: Dict[str, Any]) -> str:
    try:
        summarizer = SUMMARIZERS[entity_type]
    except KeyError:
        raise ValueError(f"No summarizer for entity type {entity_type!r}") from None
    return summarizer(data)
