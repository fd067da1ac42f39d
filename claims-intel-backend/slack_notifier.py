"""
Claims Intel - Slack Notifier
Posts dashboard messages to Slack incoming webhooks, one channel at a time.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

import config

logger = logging.getLogger(__name__)


def default_webhooks() -> Dict[str, Optional[str]]:
    return {
        "#health-ops": config.SLACK_WEBHOOK_HEALTHOPS,
        "#customer-success": config.SLACK_WEBHOOK_CS,
    }


class SlackNotifier:
    """Channel name -> webhook URL. Channels without a URL are listed but unusable."""

    def __init__(self, webhooks: Optional[Dict[str, Optional[str]]] = None, timeout_seconds: float = 15.0):
        self.webhooks = dict(default_webhooks() if webhooks is None else webhooks)
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    def configured_channels(self) -> List[str]:
        return [channel for channel, url in self.webhooks.items() if url]

    async def _post_one(self, session: aiohttp.ClientSession, url: str, payload: Dict[str, Any]) -> Optional[str]:
        """None on success, otherwise the error text."""
        try:
            async with session.post(url, json=payload) as response:
                if response.status < 400:
                    return None
                return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return str(e) or e.__class__.__name__

    async def post(
        self,
        channels: List[str],
        message: str,
        blocks: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Post message to each channel in order.

        Returns {"success": all succeeded, "results": [{channel, success, error?}]}.
        Raises ValueError for an empty channel list.
        """
        if not channels:
            raise ValueError("No channels selected")

        payload: Dict[str, Any] = {"blocks": blocks, "text": message} if blocks else {"text": message}
        results = []
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            for channel in channels:
                url = self.webhooks.get(channel)
                if not url:
                    results.append({"channel": channel, "success": False, "error": "Webhook not configured"})
                    continue
                error = await self._post_one(session, url, payload)
                if error is None:
                    results.append({"channel": channel, "success": True})
                    logger.info(f"[SLACK] Posted to {channel}")
                else:
                    results.append({"channel": channel, "success": False, "error": error})
                    logger.warning(f"[SLACK] Post to {channel} failed: {error[:200]}")

        return {"success": all(r["success"] for r in results), "results": results}


_notifier: Optional[SlackNotifier] = None


def get_slack_notifier() -> SlackNotifier:
    """Get singleton notifier configured from the environment"""
    global _notifier
    if _notifier is None:
        _notifier = SlackNotifier()
    return _notifier
