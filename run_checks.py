from fastapi.testclient import TestClient
from app.main import app

client = TestClient(app)

print('ROOT:')
print(client.get('/').json())

print('\nHEALTH:')
print(client.get('/health').json())

print('\nDB HEALTH:')
try:
    resp = client.get('/health/db')
    print(resp.status_code)
    try:
        print(resp.json())
    except Exception:
        print(resp.text)
except Exception as e:
    print('DB call raised exception:', e)

print('\nSTATISTICS:')
try:
    resp = client.get('/crime-reports/statistics')
    print(resp.status_code, resp.json())
except Exception as e:
    print('Statistics call raised exception:', e)

print('\nNEARBY (Hoan Kiem, 5km):')
try:
    resp = client.get('/crime-reports/nearby', params={'lat': 21.0285, 'lng': 105.8542, 'radius': 5})
    print(resp.status_code, resp.json())
except Exception as e:
    print('Nearby call raised exception:', e)
