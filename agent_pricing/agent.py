# ───────────────────────────────────────────────────────────────
# Imports del ADK
# ───────────────────────────────────────────────────────────────
from google.adk.agents import LlmAgent
from google.genai import types
from google.adk.sessions import InMemorySessionService
from google.adk.runners import Runner
import asyncio

#───────────────────────────────────────────────────────────────
# Importar herramientas
# ───────────────────────────────────────────────────────────────
from .tools.tool_pricing import price_insights, ingest_invoice_lines

#───────────────────────────────────────────────────────────────
# Importar prompts
# ───────────────────────────────────────────────────────────────
from . import prompt_pricing

#───────────────────────────────────────────────────────────────
# Configuración del modelo y autenticación
# ───────────────────────────────────────────────────────────────
from dotenv import load_dotenv
import os
load_dotenv()
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY")
Model = os.getenv("PRICING_MODEL", "gemini-2.5-flash")
temperature = 0.4

#───────────────────────────────────────────────────────────────
# Definición del agente raíz
# ───────────────────────────────────────────────────────────────
root_agent = LlmAgent (
    name = "agent_precios",
    model = Model,
    description="Agente de inteligencia de precios: trackers, alertas y comparación entre proveedores a partir de facturas.",
    instruction= prompt_pricing.instrucciones_pricing,

    generate_content_config=types.GenerateContentConfig
    (
        temperature= temperature,
    ),

    tools=[
        price_insights,
        ingest_invoice_lines,
    ],
)


# ───────────────────────────────────────────────────────────────
# Helper para ejecutar con sesión (pruebas locales / adk web)
# ───────────────────────────────────────────────────────────────

APP_NAME = "app_pricing"
_session_service = InMemorySessionService()

def run_with_session(session_id: str, user_message: str) -> str:
    """Ejecuta una interacción dentro de una sesión (modo local/dev)."""

    async def _ensure_session():
        existing = await _session_service.get_session(
            app_name=APP_NAME,
            user_id=session_id,
            session_id=session_id,
        )
        if existing is None:
            await _session_service.create_session(
                app_name=APP_NAME,
                user_id=session_id,
                session_id=session_id,
            )

    asyncio.run(_ensure_session())

    runner = Runner(
        agent=root_agent,
        app_name=APP_NAME,
        session_service=_session_service,
    )

    content = types.Content(role="user", parts=[types.Part(text=user_message)])
    events = runner.run(
        user_id=session_id,
        session_id=session_id,
        new_message=content,
    )

    last_text = ""
    for ev in events or []:
        c = getattr(ev, "content", None)
        if c and getattr(c, "parts", None):
            for p in c.parts:
                if getattr(p, "text", None):
                    last_text = p.text
    return last_text
