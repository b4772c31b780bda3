# cli.py
import logging
import sys
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime
from typing import List, Dict, Any, Optional

import requests
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.table import Table
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich import box

from prompt_toolkit import prompt
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.styles import Style as PromptStyle

from sdk.client import InventoryClient
from stocksynapse.config import load_settings
from stocksynapse.errors import StockSynapseError, ValidationError
from stocksynapse.models import ProductIn, validate_product_fields

logger = logging.getLogger("stocksynapse.cli")
console = Console()

# One worker: requests run off the interactive loop, one at a time.
_worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="stocksynapse-io")

status_message = "Ready"
product_cache: List[Dict[str, Any]] = []

custom_style = PromptStyle.from_dict({
    'completion-menu.completion': 'bg:#008888 #ffffff',
    'completion-menu.completion.current': 'bg:#00aaaa #000000',
    'scrollbar.background': 'bg:#88aaaa',
    'scrollbar.button': 'bg:#222222',
})


# ---------------------------
# Display helpers
# ---------------------------
def show_products(products: List[Dict[str, Any]], title: str = "📦 Inventory"):
    if not products:
        console.print("[italic yellow]No products found[/italic yellow]")
        return

    table = Table(
        title=title,
        box=box.ROUNDED,
        header_style="bold cyan",
        title_style="bold magenta",
        show_lines=True
    )
    table.add_column("ID", style="dim", width=12)
    table.add_column("Name", style="bold", width=20)
    table.add_column("Price", justify="right", width=10)
    table.add_column("Qty", justify="right", width=8)
    table.add_column("Category", width=15)
    table.add_column("Description", width=30)

    for p in products:
        qty = p.get("quantity", 0)
        table.add_row(
            p.get("id", "N/A")[:8] + "...",
            p.get("name", "N/A"),
            f"${p.get('price', 0):.2f}",
            str(qty) if qty else "[red]0[/red]",
            p.get("category") or "-",
            p.get("description") or ""
        )
    console.print(table)


def show_stats(stats: Dict[str, Any]):
    grid = Table.grid(padding=(0, 2))
    grid.add_column(style="bold")
    grid.add_column(justify="right")
    grid.add_row("Total unique products", str(stats.get("product_count", 0)))
    grid.add_row("Units in stock", str(stats.get("total_quantity", 0)))
    grid.add_row("Inventory value", f"[green]${stats.get('inventory_value', 0):,.2f}[/green]")
    grid.add_row("Out of stock", f"[red]{stats.get('out_of_stock', 0)}[/red]")
    console.print(Panel.fit(grid, title="📊 Live Statistics", border_style="green"))


def show_forecast(product: Dict[str, Any], text: str):
    console.print(Panel(Markdown(text), title=f"🔮 Forecast for {product.get('name', '?')}", border_style="magenta"))


def show_status(message: str, is_success: bool = True):
    style = "green" if is_success else "red"
    return Panel.fit(f"[{style}]{message}[/{style}]", title="Status")


def _describe_error(e: Exception) -> str:
    if isinstance(e, requests.HTTPError) and e.response is not None:
        try:
            detail = e.response.json().get("detail", e.response.text)
        except ValueError:
            detail = e.response.text
        return f"HTTP {e.response.status_code}: {detail}"
    return str(e)


# ---------------------------
# API wrapper: the call runs on the worker thread, the spinner here
# ---------------------------
def try_api(fn, *args, success_msg: Optional[str] = None, description: str = "Processing...", **kwargs):
    """
    Submits fn(*args, **kwargs) to the worker and shows a spinner until it
    finishes. Returns the result, or None after reporting the error.
    """
    global status_message
    future = _worker.submit(fn, *args, **kwargs)
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
    ) as progress:
        progress.add_task(description=description, total=None)
        while not future.done():
            wait([future], timeout=0.1)

    try:
        result = future.result()
    except Exception as e:
        logger.debug("Request failed", exc_info=True)
        status_message = f"Error: {_describe_error(e)}"
        console.print(show_status(status_message, False))
        return None

    if success_msg:
        status_message = success_msg
        console.print(show_status(success_msg, True))
    return result


# ---------------------------
# Autocompletion helpers
# ---------------------------
def refresh_product_cache(c: InventoryClient):
    global product_cache
    product_cache = try_api(c.list_products) or []


def get_product_completer():
    names = [p.get("name", "") for p in product_cache]
    ids = [p.get("id", "") for p in product_cache]
    return WordCompleter([n for n in (names + ids) if n], ignore_case=True)


def resolve_product_id(entry: str) -> str:
    # accept a product name from the completer as well as an id
    entry = entry.strip()
    for p in product_cache:
        if p.get("name", "").lower() == entry.lower():
            return p["id"]
    return entry


# ---------------------------
# Layout and Header
# ---------------------------
def create_header(base_url: str):
    header = Table(show_header=False, box=box.ROUNDED)
    header.add_column("left", width=30)
    header.add_column("center", width=40)
    header.add_column("right", width=30)

    now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    header.add_row(
        "📦 StockSynapse",
        f"[bold blue]Inventory & Forecasts[/bold blue] [dim]{base_url}[/dim]",
        f"[dim]{now}[/dim]"
    )
    return Panel(header, style="bold blue")


# ---------------------------
# Input helpers
# ---------------------------
def prompt_with_autocomplete(message: str, completer=None, default: str = ""):
    return prompt(f"{message} ", completer=completer, style=custom_style, default=default)


def ask_product_fields(current: Optional[Dict[str, Any]] = None) -> Optional[ProductIn]:
    """Collect and validate the editable fields; None if validation fails."""
    current = current or {}
    name = prompt_with_autocomplete("Product name", default=current.get("name", ""))
    price = Prompt.ask("💰 Price", default=str(current.get("price", "0.00")))
    qty = Prompt.ask("📦 Quantity", default=str(current.get("quantity", 0)))
    category = prompt_with_autocomplete("🏷️ Category", default=current.get("category", ""))
    description = prompt_with_autocomplete("📝 Description", default=current.get("description", ""))
    try:
        return validate_product_fields(name, price, qty, category, description)
    except ValidationError as e:
        console.print(show_status(f"Invalid input: {e}", False))
        return None


# ---------------------------
# Main menu
# ---------------------------
def menu(c: InventoryClient):
    console.clear()
    console.print(create_header(c.base_url))
    refresh_product_cache(c)

    while True:
        if status_message:
            console.print(show_status(status_message, "Error" not in status_message))

        menu_table = Table.grid(padding=(0, 2))
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)

        options = [
            ("1", "📦 List products", "6", "🗑️ Delete product"),
            ("2", "🔍 Search products", "7", "🔮 Sales forecast"),
            ("3", "➕ Add product", "8", "📊 Dashboard"),
            ("4", "ℹ️ Get product by ID", "q", "👋 Quit"),
            ("5", "✏️ Update product", "", ""),
        ]
        for row in options:
            menu_table.add_row(*row)

        console.print(Panel(menu_table, title="📋 Menu", border_style="yellow"))

        choice = prompt_with_autocomplete(
            "\nChoose an option",
            completer=WordCompleter([str(i) for i in range(1, 9)] + ["q", "quit", "exit"])
        ).strip()

        if choice == "1":
            category = prompt_with_autocomplete("Filter by category (blank for all)").strip()
            in_stock = Confirm.ask("Only products in stock?", default=False)
            products = try_api(c.list_products, category or None, in_stock,
                               success_msg="Products loaded successfully")
            if products is not None:
                show_products(products)

        elif choice == "2":
            term = prompt_with_autocomplete("Enter search term").strip()
            if not term:
                continue
            res = try_api(c.search_products, term, success_msg=f"Search for '{term}' completed")
            if res is not None:
                show_products(res, title=f"🔍 Results for '{term}'")

        elif choice == "3":
            fields = ask_product_fields()
            if fields is None:
                continue
            resp = try_api(
                c.register_product, fields.name, fields.price, fields.quantity,
                fields.category, fields.description,
                success_msg=f"Product '{fields.name}' added"
            )
            if resp:
                console.print(Panel(f"Added product: [green]{resp['product_id']}[/green]"))
                refresh_product_cache(c)

        elif choice == "4":
            pid = resolve_product_id(prompt_with_autocomplete("Enter product ID", completer=get_product_completer()))
            resp = try_api(c.get_product, pid, success_msg=f"Product {pid} details loaded")
            if resp:
                show_products([resp])

        elif choice == "5":
            pid = resolve_product_id(prompt_with_autocomplete("Product to update", completer=get_product_completer()))
            current = try_api(c.get_product, pid)
            if not current:
                continue
            fields = ask_product_fields(current)
            if fields is None:
                continue
            resp = try_api(
                c.update_product, pid, fields.name, fields.price, fields.quantity,
                fields.category, fields.description,
                success_msg=f"Product '{fields.name}' updated"
            )
            if resp:
                show_products([resp])
                refresh_product_cache(c)

        elif choice == "6":
            pid = resolve_product_id(prompt_with_autocomplete("Product to delete", completer=get_product_completer()))
            if Confirm.ask(f"[red]Delete product {pid}?[/red]"):
                if try_api(c.delete_product, pid, success_msg=f"Product {pid} deleted") is not None:
                    refresh_product_cache(c)

        elif choice == "7":
            pid = resolve_product_id(prompt_with_autocomplete("Product to forecast", completer=get_product_completer()))
            product = try_api(c.get_product, pid)
            if not product:
                continue
            resp = try_api(c.forecast, pid, success_msg="Forecast ready",
                           description="Generating forecast (this may take a while)...")
            if resp:
                show_forecast(product, resp["forecast"])

        elif choice == "8":
            resp = try_api(c.stats, success_msg="Statistics refreshed")
            if resp:
                show_stats(resp)

        elif choice.lower() in ("q", "quit", "exit"):
            if Confirm.ask("Are you sure you want to quit?"):
                console.print(Panel.fit("[bold green]Goodbye! 👋[/bold green]", title="StockSynapse"))
                return

        console.print()
        console.rule(style="dim")


def main():
    try:
        settings = load_settings()
    except StockSynapseError as e:
        console.print(f"[bold red]{e}[/bold red]")
        sys.exit(1)

    logging.basicConfig(level=settings.log_level, format="%(message)s",
                        handlers=[RichHandler(console=console, show_path=False)])
    c = InventoryClient(base_url=settings.api_url)
    try:
        menu(c)
    except KeyboardInterrupt:
        console.print("\n\n[bold red]Interrupted by user[/bold red]")
        sys.exit(1)
    finally:
        _worker.shutdown(wait=False)


if __name__ == "__main__":
    main()
