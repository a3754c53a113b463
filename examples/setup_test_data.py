# Create test users and items through the admin UI, keeping their ids in shared_state.

if not hasattr(shared_state, "test_data"):
    shared_state.test_data = {"users": [], "items": []}

for i in range(1, 4):
    await page.goto("http://localhost:3000/admin/users/new")
    await page.fill("#name", f"Test User {i}")
    await page.fill("#email", f"testuser{i}@example.com")
    await page.select_option("#role", "user")
    await page.click('button:has-text("Create User")')
    await page.wait_for_selector(".success-message")
    user_id = await page.text_content(".user-id")
    shared_state.test_data["users"].append({"id": user_id, "name": f"Test User {i}"})
    console.log(f"  created user {i}: {user_id}")

for i in range(1, 6):
    await page.goto("http://localhost:3000/admin/items/new")
    await page.fill("#title", f"Test Item {i}")
    await page.fill("#price", str(i * 10))
    await page.click('button:has-text("Create Item")')
    await page.wait_for_selector(".success-message")
    item_id = await page.text_content(".item-id")
    shared_state.test_data["items"].append({"id": item_id, "title": f"Test Item {i}", "price": i * 10})
    console.log(f"  created item {i}: {item_id}")

console.log("users:", len(shared_state.test_data["users"]), "items:", len(shared_state.test_data["items"]))
