"""Public API surface.

- /approvals/*, /record-approval: approval ledger writes and reads
- /mint, /pull/<id>, /nft/<id>, /documents, /recipient/nfts, /dashboard/stats: document NFT lifecycle
- /erc20/*: live ERC-20 status, pullback and its history
- /reconcile, /monitor/*: sweep and event loop control
- /auth/siwe/*, /auth/nonce, /auth/login: wallet sign-in
"""

from django.urls import path
from .views_auth import siwe_nonce, siwe_verify, siwe_session, siwe_signout, wallet_nonce, wallet_login
from .views_ops import (
	health, csrf, record_approval, record_erc20_approval, mint, pull_nft, pull_erc20,
	documents, attach_content_ref, reconcile, monitor_start, monitor_stop,
)
from .views_read import (
	approval_status, approvals_by_operator, connected_recipients, nft_detail,
	erc20_check, erc20_history, erc20_info, audit, monitor_status, recipient_nfts, dashboard_stats,
)


urlpatterns = [
	path("health", health),
	path("csrf", csrf),
	path("record-approval", record_approval),
	path("approvals/erc20", record_erc20_approval),
	path("approvals/connected-recipients", connected_recipients),
	path("approvals/operator/<str:address>", approvals_by_operator),
	path("approvals/<str:wallet>", approval_status),
	path("mint", mint),
	path("pull/<str:token_id>", pull_nft),
	path("nft/<str:token_id>", nft_detail),
	path("documents", documents),
	path("documents/<str:token_id>/content-ref", attach_content_ref),
	path("recipient/nfts", recipient_nfts),
	path("dashboard/stats", dashboard_stats),
	path("erc20/check", erc20_check),
	path("erc20/pull", pull_erc20),
	path("erc20/history", erc20_history),
	path("erc20/info", erc20_info),
	path("audit/<str:identifier>", audit),
	path("reconcile", reconcile),
	path("monitor/start", monitor_start),
	path("monitor/stop", monitor_stop),
	path("monitor/status", monitor_status),
	path("auth/siwe/nonce", siwe_nonce),
	path("auth/siwe/verify", siwe_verify),
	path("auth/siwe/session", siwe_session),
	path("auth/siwe/signout", siwe_signout),
	path("auth/nonce", wallet_nonce),
	path("auth/login", wallet_login),
]
