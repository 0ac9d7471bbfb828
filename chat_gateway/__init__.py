"""
Chat Gateway.

Real-time fan-out chat core served over WebSocket by FastAPI.
"""
