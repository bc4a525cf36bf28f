# Overview: Fulfillment pipeline statuses stored in OrderRow.order_status / row_data["주문상태"].

SUPPLYING = "공급중"
PO_DOWNLOADED = "발주서 다운"
DISPATCH_DOWNLOADED = "사방넷 다운"
SHIPPING = "배송중"
CANCELLED = "취소"

DEFAULT_STATUS = SUPPLYING

ALL_STATUSES = (SUPPLYING, PO_DOWNLOADED, DISPATCH_DOWNLOADED, SHIPPING, CANCELLED)

# Only rows still in these states move to PO_DOWNLOADED on a purchase-order export
ADVANCEABLE_TO_PO = (SUPPLYING, None)


def is_known(status) -> bool:
    return status in ALL_STATUSES
