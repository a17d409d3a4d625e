import subprocess

import structlog
from pydantic import BaseModel, ConfigDict, Field

logger = structlog.get_logger()

LIST_FORMAT = (
    "{{.NAME}}\t{{.PARAMETERS}}\t{{.QUANTIZATION}}\t{{.ARCHITECTURE}}"
    "\t{{.MODEL_ID}}\t{{.CREATED}}\t{{.SIZE}}"
)
FIELD_COUNT = 7


class ModelDescriptor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    parameters: str
    quantization: str
    architecture: str
    model_id: str = Field(alias="modelId")
    created: str
    size: str


FALLBACK_MODELS = [
    ModelDescriptor(
        name="ai/llama3.2:1B-Q8_0",
        parameters="1.24 B",
        quantization="Q8_0",
        architecture="llama",
        model_id="a15c3117eeeb",
        created="5 weeks ago",
        size="1.22 GiB",
    ),
    ModelDescriptor(
        name="ai/qwen3",
        parameters="8.19 B",
        quantization="IQ2_XXS/Q4_K_M",
        architecture="qwen3",
        model_id="79fa56c07429",
        created="3 days ago",
        size="4.68 GiB",
    ),
]


class ModelCatalog:
    """Lists the models known to Docker Model Runner via ``docker model ls``."""

    def __init__(self, docker_path: str = "docker", timeout: float = 30.0):
        self._docker_path = docker_path
        self.timeout = timeout

    def _run_docker(self, args: list[str]) -> str:
        try:
            result = subprocess.run(
                [self._docker_path] + args,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
            if result.returncode != 0:
                logger.error(
                    "docker model ls failed",
                    returncode=result.returncode,
                    output=(result.stderr or result.stdout).strip(),
                )
                return ""
            return result.stdout
        except subprocess.TimeoutExpired:
            logger.error("docker model ls timed out")
            return ""
        except FileNotFoundError:
            logger.error("docker executable not found", path=self._docker_path)
            return ""

    def _parse_models(self, output: str) -> list[ModelDescriptor]:
        models: list[ModelDescriptor] = []
        for line in output.splitlines():
            if not line.strip():
                continue
            fields = line.split("\t")
            if len(fields) < FIELD_COUNT:
                logger.warning("Invalid model line format", line=line)
                continue
            name, parameters, quantization, architecture, model_id, created, size = fields[
                :FIELD_COUNT
            ]
            models.append(
                ModelDescriptor(
                    name=name,
                    parameters=parameters,
                    quantization=quantization,
                    architecture=architecture,
                    model_id=model_id,
                    created=created,
                    size=size,
                )
            )
        return models

    def list_models(self) -> list[ModelDescriptor]:
        output = self._run_docker(["model", "ls", "--format", LIST_FORMAT])
        models = self._parse_models(output) if output else []
        if not models:
            logger.warning("No models listed, using fallback models")
            return list(FALLBACK_MODELS)

        logger.info("Retrieved available Docker models", count=len(models))
        return models
