"""
HTTP 層：FastAPI routers，只負責把業務異常轉換成 HTTP 回應
"""
