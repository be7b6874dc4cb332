from tests.conftest import ADMIN_EMAIL, ADMIN_PASSWORD, DEFAULT_PASSWORD
from tests.test_order_service import DELIVERY, PICKUP


async def create_user(client, headers, email, role_ids):
    response = await client.post(
        "/api/users",
        json={
            "email": email,
            "password": DEFAULT_PASSWORD,
            "first_name": "Test",
            "last_name": "User",
            "role_ids": role_ids,
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


async def test_root_and_health(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["version"]

    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_detailed_health_reports_each_dependency(client):
    response = await client.get("/api/health/detailed")
    body = response.json()
    assert body["services"]["database"]["status"] == "ok"
    assert body["services"]["redis"]["status"] == "ok"
    # 未配置 TMS 后端地址
    assert body["services"]["tms_backend"]["status"] == "warning"
    assert body["status"] == "warning"


async def test_login_and_profile(client):
    response = await client.post(
        "/api/auth/login", json={"email": ADMIN_EMAIL.upper(), "password": ADMIN_PASSWORD}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == ADMIN_EMAIL

    response = await client.get(
        "/api/auth/profile", headers={"Authorization": f"Bearer {body['access_token']}"}
    )
    assert response.status_code == 200
    profile = response.json()
    assert [role["name"] for role in profile["roles"]] == ["admin"]
    assert "system:config" in profile["permissions"]


async def test_login_with_wrong_password(client):
    response = await client.post(
        "/api/auth/login", json={"email": ADMIN_EMAIL, "password": "wrong-pass"}
    )
    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_CREDENTIALS"

    response = await client.post(
        "/api/auth/login", json={"email": "nobody@tms.com", "password": "wrong-pass"}
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "邮箱或密码错误"


async def test_missing_or_bad_token(client):
    response = await client.get("/api/auth/profile")
    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHENTICATED"
    assert response.headers["WWW-Authenticate"] == "Bearer"

    response = await client.get(
        "/api/users", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401


async def test_register_assigns_customer_role(client):
    response = await client.post(
        "/api/auth/register",
        json={
            "email": "New@TMS.com",
            "password": DEFAULT_PASSWORD,
            "first_name": "New",
            "last_name": "Customer",
        },
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["user"]["email"] == "new@tms.com"
    assert [role["name"] for role in body["user"]["roles"]] == ["customer"]

    response = await client.post(
        "/api/auth/register",
        json={
            "email": "new@tms.com",
            "password": DEFAULT_PASSWORD,
            "first_name": "New",
            "last_name": "Customer",
        },
    )
    assert response.status_code == 409
    assert response.json()["code"] == "ALREADY_EXISTS"


async def test_customer_is_forbidden_from_admin_routes(client, login):
    await client.post(
        "/api/auth/register",
        json={
            "email": "cust@tms.com",
            "password": DEFAULT_PASSWORD,
            "first_name": "C",
            "last_name": "U",
        },
    )
    headers = await login("cust@tms.com", DEFAULT_PASSWORD)

    response = await client.get("/api/users", headers=headers)
    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"

    response = await client.get("/api/roles", headers=headers)
    assert response.status_code == 403


async def test_validation_error(client, login):
    headers = await login()
    response = await client.post("/api/users", json={"email": "bad"}, headers=headers)
    assert response.status_code == 422


async def test_logout_revokes_token(client, login):
    headers = await login()
    assert (await client.get("/api/auth/validate", headers=headers)).status_code == 200

    response = await client.post("/api/auth/logout", headers=headers)
    assert response.status_code == 200

    response = await client.get("/api/auth/validate", headers=headers)
    assert response.status_code == 401


async def test_refresh_rotation(client):
    response = await client.post(
        "/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD}
    )
    refresh_token = response.json()["refresh_token"]

    response = await client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
    assert response.status_code == 200
    new_access = response.json()["access_token"]

    response = await client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
    assert response.status_code == 401

    response = await client.get(
        "/api/auth/profile", headers={"Authorization": f"Bearer {new_access}"}
    )
    assert response.status_code == 200


async def test_user_management(client, login, seeded):
    headers = await login()
    user = await create_user(client, headers, "driver@tms.com", [seeded["driver"]])

    response = await client.get(f"/api/users/{user['id']}", headers=headers)
    assert response.json()["email"] == "driver@tms.com"

    response = await client.get("/api/users/email/DRIVER@tms.com", headers=headers)
    assert response.json()["id"] == user["id"]

    response = await client.get("/api/users/role/driver", headers=headers)
    assert [u["id"] for u in response.json()] == [user["id"]]

    response = await client.get(f"/api/users/{user['id']}/permissions", headers=headers)
    assert response.json() == ["order:read", "order:update"]

    response = await client.patch(
        f"/api/users/{user['id']}", json={"phone": "13800000000"}, headers=headers
    )
    assert response.json()["phone"] == "13800000000"

    response = await client.patch(
        f"/api/users/{user['id']}/status", json={"is_active": False}, headers=headers
    )
    assert response.json()["is_active"] is False

    response = await client.delete(f"/api/users/{user['id']}", headers=headers)
    assert response.status_code == 204
    response = await client.get(f"/api/users/{user['id']}", headers=headers)
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


async def test_cannot_delete_last_admin(client, login, seeded):
    headers = await login()
    response = await client.delete(f"/api/users/{seeded['admin_user_id']}", headers=headers)
    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"


async def test_change_own_password(client, login):
    headers = await login()
    response = await client.post(
        "/api/users/me/password",
        json={"old_password": "wrong-pass", "new_password": "NewPass@1"},
        headers=headers,
    )
    assert response.status_code == 401

    response = await client.post(
        "/api/users/me/password",
        json={"old_password": ADMIN_PASSWORD, "new_password": "NewPass@1"},
        headers=headers,
    )
    assert response.status_code == 200
    await login(ADMIN_EMAIL, "NewPass@1")


async def test_role_management(client, login, seeded):
    headers = await login()
    response = await client.post(
        "/api/roles",
        json={"name": "auditor", "description": "审计", "permissions": ["report:read"]},
        headers=headers,
    )
    assert response.status_code == 201
    role = response.json()

    response = await client.post(
        f"/api/roles/{role['id']}/permissions",
        json={"permissions": ["log:read"]},
        headers=headers,
    )
    assert response.json()["permissions"] == ["report:read", "log:read"]

    response = await client.post(
        f"/api/roles/{role['id']}/permissions", json={"permissions": []}, headers=headers
    )
    assert response.status_code == 400
    assert response.json()["code"] == "BAD_REQUEST"

    response = await client.get("/api/roles/permission/log:read", headers=headers)
    assert [r["name"] for r in response.json()] == ["auditor"]

    response = await client.get("/api/roles/name/AUDITOR", headers=headers)
    assert response.json()["id"] == role["id"]

    response = await client.get("/api/roles/permissions", headers=headers)
    assert "log:read" in response.json()

    response = await client.get(f"/api/roles/{seeded['admin']}/users", headers=headers)
    assert [u["email"] for u in response.json()["users"]] == [ADMIN_EMAIL]

    response = await client.delete(f"/api/roles/{seeded['admin']}", headers=headers)
    assert response.status_code == 409

    response = await client.delete(f"/api/roles/{role['id']}", headers=headers)
    assert response.status_code == 204


async def test_role_permission_change_reaches_new_tokens(client, login, seeded):
    headers = await login()
    await create_user(client, headers, "dispatcher@tms.com", [seeded["dispatcher"]])

    response = await client.post(
        "/api/auth/login", json={"email": "dispatcher@tms.com", "password": DEFAULT_PASSWORD}
    )
    tokens = response.json()
    dispatcher_headers = {"Authorization": f"Bearer {tokens['access_token']}"}
    profile = (await client.get("/api/auth/profile", headers=dispatcher_headers)).json()
    assert "report:read" not in profile["permissions"]

    await client.post(
        f"/api/roles/{seeded['dispatcher']}/permissions",
        json={"permissions": ["report:read"]},
        headers=headers,
    )

    # 资料接口实时计算权限
    profile = (await client.get("/api/auth/profile", headers=dispatcher_headers)).json()
    assert "report:read" in profile["permissions"]

    # 刷新后的 Token 携带新的权限
    response = await client.post(
        "/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
    )
    new_headers = {"Authorization": f"Bearer {response.json()['access_token']}"}
    validated = (await client.get("/api/auth/validate", headers=new_headers)).json()
    assert "report:read" in validated["user"]["permissions"]


async def test_order_flow(client, login, seeded):
    admin_headers = await login()
    await create_user(client, admin_headers, "dispatcher@tms.com", [seeded["dispatcher"]])
    await create_user(client, admin_headers, "driver@tms.com", [seeded["driver"]])
    dispatcher = await login("dispatcher@tms.com", DEFAULT_PASSWORD)
    driver = await login("driver@tms.com", DEFAULT_PASSWORD)

    response = await client.post(
        "/api/orders",
        json={
            "customer_id": "customer-1",
            "pickup_address": PICKUP,
            "delivery_address": DELIVERY,
            "total_amount": "88.50",
        },
        headers=dispatcher,
    )
    assert response.status_code == 201, response.text
    order = response.json()
    assert order["status"] == "pending"
    assert order["delivery_address"]["latitude"] is None

    response = await client.get("/api/orders", headers=driver)
    assert response.status_code == 403

    response = await client.get(f"/api/orders/{order['id']}", headers=driver)
    assert response.status_code == 200

    response = await client.patch(
        f"/api/orders/{order['id']}/status", json={"status": "delivered"}, headers=driver
    )
    assert response.status_code == 409

    response = await client.patch(
        f"/api/orders/{order['id']}/status", json={"status": "assigned"}, headers=driver
    )
    assert response.json()["status"] == "assigned"

    response = await client.patch(
        f"/api/orders/{order['id']}/payment", json={"payment_status": "paid"}, headers=driver
    )
    assert response.status_code == 403

    response = await client.patch(
        f"/api/orders/{order['id']}/payment",
        json={"payment_status": "paid"},
        headers=admin_headers,
    )
    assert response.json()["payment_status"] == "paid"

    response = await client.patch(
        f"/api/orders/{order['id']}/status", json={"status": "flying"}, headers=dispatcher
    )
    assert response.status_code == 422

    response = await client.delete(f"/api/orders/{order['id']}", headers=dispatcher)
    assert response.status_code == 403
    response = await client.delete(f"/api/orders/{order['id']}", headers=admin_headers)
    assert response.status_code == 204
