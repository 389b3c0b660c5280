"""
Recharge order endpoints: submit and remark update.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from fundrouter.infra.api_client import ApiClient

SUBMIT_ORDER_PATH = "/Recharge/submitOrder"
UPDATE_REMARK_PATH = "/Recharge/updateOrderRemark"


class OrderService:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def submit_order(
        self,
        company_account_id: int,
        amount: float,
        payment_type: str,
        payment_method: str = "online",
        screenshot_urls: Optional[Sequence[str]] = None,
        card_last_four: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a recharge order.

        Returns the envelope data: {order_id?, order_no?, pay_url?}.
        """
        form: Dict[str, Any] = {
            "company_account_id": str(company_account_id),
            "amount": f"{amount:g}",
            "payment_method": payment_method,
            "payment_type": payment_type,
        }
        if screenshot_urls:
            form["payment_screenshot_url"] = ",".join(screenshot_urls)
        if card_last_four:
            form["user_remark"] = card_last_four
        data = await self.api.post_form(SUBMIT_ORDER_PATH, data=form)
        return data if isinstance(data, dict) else {}

    async def update_remark(
        self,
        user_remark: str,
        order_id: Optional[str] = None,
        order_no: Optional[str] = None,
    ) -> Any:
        form: Dict[str, Any] = {"user_remark": user_remark}
        if order_id:
            form["order_id"] = str(order_id)
        elif order_no:
            form["order_no"] = str(order_no)
        return await self.api.post_form(UPDATE_REMARK_PATH, data=form)
