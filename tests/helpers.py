STATIC_KEY = "static-test-key"
OPERATOR_PASSWORD = "secret123"


def login(client, email):
    response = client.post("/api/v1/auth/login-json", json={"email": email, "password": OPERATOR_PASSWORD})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def intake(client, headers, **fields):
    payload = {"UserCode": "C100", "Branch": "MIA", "Weight": 2.5}
    payload.update(fields)
    return client.post("/api/v1/integrations/packages/intake", json=payload, headers=headers)
