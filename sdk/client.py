# sdk/client.py
import requests
import httpx
from typing import Optional


class InventoryClient:
    def __init__(self, base_url: str = "http://localhost:8085", timeout: float = 10,
                 forecast_timeout: float = 150, session: Optional[requests.Session] = None,
                 async_transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        # the server may sit out two 30 s rate-limit backoffs before answering
        self.forecast_timeout = forecast_timeout
        self.async_transport = async_transport

    @staticmethod
    def _product_body(name: str, price: float, quantity: int, category: str, description: str):
        return {
            "name": name, "price": price, "quantity": quantity,
            "category": category, "description": description,
        }

    # Products
    def register_product(self, name: str, price: float, quantity: int,
                         category: str = "", description: str = ""):
        r = self.session.post(f"{self.base_url}/products",
                              json=self._product_body(name, price, quantity, category, description),
                              timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def list_products(self, category: Optional[str] = None, available_only: bool = False):
        params = {}
        if category:
            params["category"] = category
        if available_only:
            params["available_only"] = "true"
        r = self.session.get(f"{self.base_url}/products", params=params, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def search_products(self, name: str):
        r = self.session.get(f"{self.base_url}/products/search", params={"name": name}, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def get_product(self, product_id: str):
        r = self.session.get(f"{self.base_url}/products/{product_id}", timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def update_product(self, product_id: str, name: str, price: float, quantity: int,
                       category: str = "", description: str = ""):
        r = self.session.put(f"{self.base_url}/products/{product_id}",
                             json=self._product_body(name, price, quantity, category, description),
                             timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def delete_product(self, product_id: str):
        r = self.session.delete(f"{self.base_url}/products/{product_id}", timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    # Forecast
    def forecast(self, product_id: str):
        r = self.session.post(f"{self.base_url}/products/{product_id}/forecast", timeout=self.forecast_timeout)
        r.raise_for_status()
        return r.json()

    async def forecast_async(self, product_id: str):
        async with httpx.AsyncClient(timeout=self.forecast_timeout, transport=self.async_transport) as client:
            r = await client.post(f"{self.base_url}/products/{product_id}/forecast")
            r.raise_for_status()
            return r.json()

    # Dashboard
    def stats(self):
        r = self.session.get(f"{self.base_url}/stats", timeout=self.timeout)
        r.raise_for_status()
        return r.json()
