# Reset the session to a fresh-user state: cookies, web storage and IndexedDB.

await context.clear_cookies()
await page.evaluate("() => { localStorage.clear(); sessionStorage.clear(); }")
await page.evaluate(
    """async () => {
        for (const db of await indexedDB.databases()) {
            if (db.name) indexedDB.deleteDatabase(db.name);
        }
    }"""
)
await page.reload(wait_until="networkidle")
console.log("cookies, storage and IndexedDB cleared")

if getattr(shared_state, "clear_shared_state", False):
    shared_state.__dict__.clear()
    console.log("shared_state cleared")
