"""
Order Service: エラー分類

オーケストレーターが送出する hard な失敗。各クラスは API 層が返す
HTTP ステータスを持つ。

soft な失敗 (イベント発行、補完用の照会) はここには現れない。
PublishResult や省略可能なプロファイルとして受け渡される。
"""


class OrderServiceError(Exception):
    status_code = 500
    title = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(OrderServiceError):
    """不正な入力。副作用の前に送出する。"""

    status_code = 400
    title = "Bad Request"


class DependencyNotFound(OrderServiceError):
    """ユーザーまたはレストランの id が見つからない。注文行は作られない。"""

    status_code = 404
    title = "Not Found"

    def __init__(self, which: str, ident):
        super().__init__(f"{which} not found: {ident}")
        self.which = which
        self.ident = ident


class NotFound(OrderServiceError):
    status_code = 404
    title = "Not Found"

    def __init__(self, order_id):
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


class InvalidTransition(OrderServiceError):
    status_code = 409
    title = "Conflict"


class DependencyUnavailable(OrderServiceError):
    """照会先・決済・ストアのタイムアウトまたは通信エラー。"""

    status_code = 503
    title = "Service Unavailable"

    def __init__(self, which: str, detail: str):
        super().__init__(f"{which} unavailable: {detail}")
        self.which = which
        self.detail = detail


class PaymentFailed(OrderServiceError):
    """
    決済が拒否された、またはエラーになった。送出される時点で注文は
    PAYMENT_FAILED として永続化済み。
    """

    status_code = 402
    title = "Payment Required"

    def __init__(self, message: str, order_id=None):
        super().__init__(message)
        self.order_id = order_id
