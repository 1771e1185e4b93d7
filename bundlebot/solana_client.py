"""
Solana RPC client for balance checks, fee sampling and transaction submission.
"""
import asyncio
import logging
from typing import Optional, Any, List, Sequence, Tuple

import httpx
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.rpc.responses import GetBalanceResp
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.types import TxOpts

from .errors import NetworkFailure
from .utils import short_key

logger = logging.getLogger(__name__)

VALID_COMMITMENTS = ("processed", "confirmed", "finalized")


class SolanaClient:
    """Client for Solana RPC operations with failover support."""
    
    def __init__(
        self,
        rpc_url: str,
        fallback_rpc_url: Optional[str] = None,
        commitment: str = "confirmed",
        confirm_timeout: float = 30.0,
        http_timeout: float = 10.0
    ):
        if commitment not in VALID_COMMITMENTS:
            raise ValueError(f"Unknown commitment level: {commitment}")
        self.rpc_url_primary = rpc_url
        self.rpc_url_fallback = fallback_rpc_url
        self._active_rpc_url = rpc_url
        self._failover_used = False  # Track if failover has been used (for logging)
        self.commitment = Commitment(commitment)
        self.confirm_timeout = confirm_timeout
        self.client = AsyncClient(rpc_url, commitment=self.commitment)
        # Raw JSON-RPC calls not covered by AsyncClient
        self.http = httpx.AsyncClient(timeout=http_timeout)
    
    @property
    def active_rpc_url(self) -> str:
        return self._active_rpc_url
    
    async def _switch_to_fallback(self, reason: str) -> bool:
        """
        Switch to fallback RPC if available.
        
        Args:
            reason: Reason for failover (for logging)
        
        Returns:
            True if switched to fallback, False if no fallback available
        """
        if self.rpc_url_fallback and self._active_rpc_url == self.rpc_url_primary:
            if not self._failover_used:
                # Log domains only, endpoints may embed API keys
                primary_domain = self.rpc_url_primary.split('//')[1].split('/')[0] if '//' in self.rpc_url_primary else self.rpc_url_primary
                fallback_domain = self.rpc_url_fallback.split('//')[1].split('/')[0] if '//' in self.rpc_url_fallback else self.rpc_url_fallback
                logger.warning(
                    f"RPC failover: PRIMARY ({primary_domain}) -> FALLBACK ({fallback_domain}), reason: {reason}"
                )
                self._failover_used = True
            
            try:
                await self.client.close()
            except Exception as e:
                logger.debug(f"Error closing primary RPC client: {e}")
            
            self._active_rpc_url = self.rpc_url_fallback
            self.client = AsyncClient(self.rpc_url_fallback, commitment=self.commitment)
            return True
        return False
    
    def _is_failover_error(self, error: Exception) -> bool:
        """
        Check if error should trigger failover.
        
        Rate limits, timeouts and connection problems do; RPC-level rejections
        of a request (bad signature, insufficient funds) do not.
        """
        if isinstance(error, (httpx.TimeoutException, httpx.NetworkError, asyncio.TimeoutError)):
            return True
        if isinstance(error, httpx.HTTPStatusError) and error.response.status_code in (429, 502, 503, 504):
            return True
        
        error_str = str(error).lower()
        if '429' in error_str or 'rate limit' in error_str or 'too many requests' in error_str:
            return True
        if 'timeout' in error_str or 'timed out' in error_str:
            return True
        if 'connection' in error_str:
            return True
        return False
    
    async def _with_failover(self, coro_func, *args, **kwargs):
        """
        Execute coroutine with failover support.
        
        Raises:
            Exception: If both primary and fallback fail
        """
        try:
            return await coro_func(*args, **kwargs)
        except Exception as e:
            if self._is_failover_error(e) and await self._switch_to_fallback(str(e)):
                try:
                    return await coro_func(*args, **kwargs)
                except Exception as e2:
                    logger.error(f"Both primary and fallback RPC failed. Last error: {e2}")
                    raise e2 from e
            raise
    
    async def get_balance(self, pubkey: Pubkey) -> int:
        """
        Get SOL balance in lamports.
        
        Raises:
            NetworkFailure: If the balance cannot be fetched
        """
        async def _get():
            resp: GetBalanceResp = await self.client.get_balance(pubkey, commitment=self.commitment)
            return resp.value
        
        try:
            return await self._with_failover(_get)
        except Exception as e:
            raise NetworkFailure(f"Error getting balance for {short_key(pubkey)}: {e}") from e
    
    async def get_latest_blockhash(self) -> Tuple[Hash, int]:
        """
        Get a fresh blockhash for transaction building.
        
        Returns:
            (blockhash, last_valid_block_height)
        """
        async def _get():
            return await self.client.get_latest_blockhash(commitment=self.commitment)
        
        try:
            result = await self._with_failover(_get)
        except Exception as e:
            raise NetworkFailure(f"Error getting latest blockhash: {e}") from e
        if not result.value:
            raise NetworkFailure("get_latest_blockhash returned no value")
        return result.value.blockhash, result.value.last_valid_block_height
    
    async def send_and_confirm(
        self,
        instructions: Sequence[Instruction],
        payer: Keypair,
        signers: Optional[Sequence[Keypair]] = None,
        commitment: Optional[str] = None
    ) -> str:
        """
        Build, sign, submit and confirm a legacy transaction.
        
        A fresh blockhash is fetched for every call. The signed transaction is
        submitted once (failover resends the same signed bytes, so it cannot
        execute twice); confirmation is awaited at the requested commitment.
        
        Args:
            instructions: Ordered instructions for the transaction
            payer: Fee payer (always signs)
            signers: Additional signers besides the payer
            commitment: Commitment level (defaults to client commitment)
        
        Returns:
            Transaction signature (base58 string)
        
        Raises:
            NetworkFailure: On submission, confirmation or on-chain failure
        """
        level = Commitment(commitment) if commitment else self.commitment
        blockhash, last_valid_block_height = await self.get_latest_blockhash()
        
        all_signers = [payer]
        for signer in signers or []:
            if signer.pubkey() != payer.pubkey():
                all_signers.append(signer)
        
        message = Message.new_with_blockhash(list(instructions), payer.pubkey(), blockhash)
        tx = Transaction(all_signers, message, blockhash)
        
        async def _send():
            opts = TxOpts(skip_preflight=False, preflight_commitment=level)
            return await self.client.send_transaction(tx, opts=opts)
        
        try:
            resp = await self._with_failover(_send)
        except Exception as e:
            raise NetworkFailure(f"Transaction submission failed: {e}") from e
        
        signature = resp.value
        if signature is None:
            raise NetworkFailure("Transaction send returned no signature")
        logger.debug(f"Transaction sent: {signature}")
        
        try:
            confirmation = await asyncio.wait_for(
                self.client.confirm_transaction(
                    signature,
                    commitment=level,
                    last_valid_block_height=last_valid_block_height
                ),
                timeout=self.confirm_timeout
            )
        except asyncio.TimeoutError as e:
            raise NetworkFailure(
                f"Transaction {signature} not confirmed within {self.confirm_timeout}s"
            ) from e
        except Exception as e:
            raise NetworkFailure(f"Error confirming transaction {signature}: {e}") from e
        
        statuses = confirmation.value or []
        status = statuses[0] if statuses else None
        if status is not None and status.err is not None:
            raise NetworkFailure(f"Transaction {signature} failed on-chain: {status.err}")
        
        return str(signature)
    
    async def transfer(self, from_keypair: Keypair, to_pubkey: Pubkey, lamports: int) -> str:
        """Send a confirmed System Program transfer and return its signature."""
        if lamports <= 0:
            raise ValueError(f"Transfer amount must be positive, got {lamports}")
        ix = transfer(TransferParams(
            from_pubkey=from_keypair.pubkey(),
            to_pubkey=to_pubkey,
            lamports=lamports
        ))
        return await self.send_and_confirm([ix], from_keypair)
    
    async def _rpc_request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Raw JSON-RPC request against the active endpoint."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params or []}
        response = await self.http.post(self._active_rpc_url, json=payload)
        response.raise_for_status()
        body = response.json()
        if body.get("error"):
            raise NetworkFailure(f"RPC {method} error: {body['error']}")
        return body.get("result")
    
    async def get_recent_prioritization_fees(self, accounts: Optional[List[str]] = None) -> List[int]:
        """
        Get recent per-slot prioritization fees (micro-lamports per CU).
        
        Raises:
            NetworkFailure: If the RPC query fails
        """
        params = [accounts] if accounts else []
        try:
            result = await self._with_failover(self._rpc_request, "getRecentPrioritizationFees", params)
        except NetworkFailure:
            raise
        except Exception as e:
            raise NetworkFailure(f"Error getting recent prioritization fees: {e}") from e
        
        fees = []
        for entry in result or []:
            if isinstance(entry, dict) and "prioritizationFee" in entry:
                fees.append(int(entry["prioritizationFee"]))
        return fees
    
    async def close(self):
        """Close RPC clients."""
        await self.client.close()
        await self.http.aclose()
