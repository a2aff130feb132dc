# ============================================================================
# services/scoring.py - CV Scoring Oracle (OpenAI)
# ============================================================================

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import docx
import pdfplumber
from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError
from cvintelligence.core.config import settings
from cvintelligence.core.errors import ConfigurationError, ScoringUnavailable, UnsupportedFile
from cvintelligence.schemas.analysis import AnalysisResult
from cvintelligence.services.settings_store import SettingsStore

logger = logging.getLogger(__name__)

SYSTEM_MESSAGE = (
    "Você é um especialista em recursos humanos e análise de currículos. "
    "Forneça análises detalhadas e construtivas em português brasileiro."
)

DEFAULT_PROMPT = """Analise este currículo e forneça uma avaliação detalhada.
Considere estrutura e formatação, relevância do conteúdo, palavras-chave,
experiência profissional, formação acadêmica, habilidades e clareza.
Seja específico, construtivo e forneça sugestões práticas."""

RESPONSE_FORMAT = """Responda somente com JSON no formato:
{
  "score": number (0-100),
  "overallFeedback": "string",
  "strengths": ["string"],
  "weaknesses": ["string"],
  "suggestions": [{"category": "string", "recommendation": "string", "priority": "high|medium|low"}],
  "keywordOptimization": {"missing": ["string"], "present": ["string"]},
  "formatFeedback": {"rating": number (1-5), "comments": ["string"]},
  "extractedData": {"name": "string", "email": "string", "phone": "string", "summary": "string", "recentExperience": "string"},
  "comparativeFeedback": {"improvementsMade": ["string"], "pointsToStillImprove": ["string"]} ou null,
  "actionableExamples": [{"before": "string", "after": "string", "explanation": "string"}]
}"""

# Legacy .doc is a binary format; keep runs of printable text
DOC_TEXT_RUN = re.compile(rb"[\x20-\x7e\xc0-\xff\t\r\n]{4,}")


@dataclass
class ScoringDocument:
    path: Path
    file_name: str
    extension: str
    content_type: str = ""


@dataclass
class ScoringContext:
    model_name: str
    temperature: float
    prompt: str
    target_role: Optional[str] = None
    previous_result: Optional[dict] = field(default=None)


class CvScorer(ABC):
    """Capability interface for the external scoring oracle."""

    @abstractmethod
    async def score(self, document: ScoringDocument, context: ScoringContext) -> AnalysisResult:
        ...


def extract_text(path: Path, extension: str) -> str:
    """Pull plain text out of a PDF, DOCX or DOC file."""
    try:
        if extension == ".pdf":
            with pdfplumber.open(path) as pdf:
                return "\n".join(page.extract_text() or "" for page in pdf.pages).strip()
        if extension == ".docx":
            document = docx.Document(str(path))
            lines = [p.text for p in document.paragraphs]
            for table in document.tables:
                for row in table.rows:
                    lines.append(" | ".join(cell.text for cell in row.cells))
            return "\n".join(line for line in lines if line.strip()).strip()
        if extension == ".doc":
            raw = Path(path).read_bytes()
            runs = (m.group().decode("latin-1") for m in DOC_TEXT_RUN.finditer(raw))
            return "\n".join(run.strip() for run in runs if run.strip())
    except Exception as e:
        logger.warning(f"Text extraction failed for {path}: {e}")
        raise UnsupportedFile("Não foi possível ler o arquivo enviado")
    raise UnsupportedFile(f"Tipo de arquivo não suportado: {extension}")


async def load_scoring_context(store: SettingsStore, target_role: Optional[str],
                               previous_result: Optional[dict]) -> ScoringContext:
    """Read model name, prompt and temperature from the settings store."""
    raw_temperature = await store.resolve("AI_TEMPERATURE")
    try:
        temperature = float(raw_temperature) if raw_temperature else 0.7
    except ValueError:
        logger.warning(f"Invalid AI_TEMPERATURE {raw_temperature!r}, using 0.7")
        temperature = 0.7

    return ScoringContext(
        model_name=await store.resolve("AI_MODEL_NAME") or settings.AI_MODEL_NAME,
        temperature=min(max(temperature, 0.0), 2.0),
        prompt=await store.resolve("AI_PROMPT_CV_ANALYSIS") or DEFAULT_PROMPT,
        target_role=target_role,
        previous_result=previous_result,
    )


class OpenAICvScorer(CvScorer):
    def __init__(self, store: SettingsStore):
        self.store = store

    async def score(self, document: ScoringDocument, context: ScoringContext) -> AnalysisResult:
        api_key = await self.store.resolve("AI_API_KEY")
        if not api_key:
            logger.error("AI_API_KEY is not configured")
            raise ConfigurationError()

        text = await asyncio.to_thread(extract_text, document.path, document.extension)
        if not text:
            raise UnsupportedFile("Não foi possível extrair texto do arquivo enviado")

        client = AsyncOpenAI(api_key=api_key)
        try:
            response = await client.chat.completions.create(
                model=context.model_name,
                messages=[
                    {"role": "system", "content": SYSTEM_MESSAGE},
                    {"role": "user", "content": self._build_prompt(document, context, text)},
                ],
                response_format={"type": "json_object"},
                max_tokens=settings.AI_MAX_TOKENS,
                temperature=context.temperature,
            )
        except OpenAIError as e:
            logger.error(f"Error analyzing CV with OpenAI: {e}")
            raise ScoringUnavailable()
        finally:
            await client.close()

        content = response.choices[0].message.content if response.choices else None
        if not content:
            logger.error("Empty response from OpenAI")
            raise ScoringUnavailable()
        return parse_analysis(content)

    def _build_prompt(self, document: ScoringDocument, context: ScoringContext, text: str) -> str:
        parts = [context.prompt.strip(), RESPONSE_FORMAT]
        if context.target_role:
            parts.append(f"Vaga/cargo alvo: {context.target_role}")
        if context.previous_result:
            parts.append(
                "Análise anterior deste usuário (preencha comparativeFeedback comparando "
                "com a versão atual):\n" + json.dumps(context.previous_result, ensure_ascii=False)
            )
        else:
            parts.append("Não há análise anterior: use null em comparativeFeedback.")
        parts.append(f"Arquivo: {document.file_name}\nConteúdo:\n{text[:settings.AI_MAX_DOCUMENT_CHARS]}")
        return "\n\n".join(parts)


def parse_analysis(content: str) -> AnalysisResult:
    """Validate the oracle's JSON. Anything off-schema fails closed."""
    try:
        return AnalysisResult.model_validate(json.loads(content))
    except (json.JSONDecodeError, ValidationError, TypeError) as e:
        logger.error(f"Invalid analysis payload from scorer: {e}")
        raise ScoringUnavailable()
