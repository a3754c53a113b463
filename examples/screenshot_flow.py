# Capture a full-page screenshot of every step of a checkout flow.
# Set shared_state.flow_name beforehand to pick the output directory.

flow_name = getattr(shared_state, "flow_name", "default-flow")
screenshot_dir = Path("/tmp/flows") / flow_name
console.log(f"Capturing flow {flow_name} into {screenshot_dir}")

steps = [
    ("01-home", None, None),
    ("02-products", 'a[href="/products"]', ".product-grid"),
    ("03-product-detail", ".product-card:first-child", ".product-detail"),
    ("04-added-to-cart", 'button:has-text("Add to Cart")', ".cart-badge"),
    ("05-cart", ".cart-icon", ".cart-items"),
    ("06-checkout", 'button:has-text("Checkout")', ".checkout-form"),
]

await page.goto("http://localhost:3000")
for name, click_selector, wait_selector in steps:
    if click_selector:
        await page.click(click_selector)
        await page.wait_for_selector(wait_selector)
    await page.screenshot(path=str(screenshot_dir / f"{name}.png"), full_page=True)
    console.log(f"  captured {name}")

shared_state.last_flow_capture = {
    "name": flow_name,
    "screenshot_count": len(steps),
    "directory": str(screenshot_dir),
}
shared_state.last_flow_capture
