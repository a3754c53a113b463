# Log in to a demo application and remember who we are.
# Usage: pwsession eval --file examples/login.py

await page.goto("http://localhost:3000/login")
await page.fill("#email", "demo@example.com")
await page.fill("#password", "demopass123")
await page.click("button[type=submit]")

await page.wait_for_url("**/dashboard", timeout=8000)

username = await page.text_content(".user-menu .username")
console.log("Logged in as:", username)

shared_state.current_user = {"email": "demo@example.com", "username": username}
