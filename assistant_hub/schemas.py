"""
Request and response schemas for the assistant hub.
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional, List


class ChatRequest(BaseModel):
    question: str
    thread_id: Optional[str] = None


class ChatResponse(BaseModel):
    response: str
    msg_id: str
    thread_id: str


class EditPromptRequest(BaseModel):
    message_id: str
    new_prompt: str
    thread_id: str


class EditPromptResponse(ChatResponse):
    edited_prompt: str


class DisplayPair(BaseModel):
    msg_id: str
    chat_prompt: str
    created_at: str
    bot_message: str


class HistoryMetadata(BaseModel):
    first_id: Optional[str] = None
    last_id: Optional[str] = None
    has_more: bool = False


class HistoryResponse(BaseModel):
    messages: List[DisplayPair]
    metadata: HistoryMetadata


class CreateAssistantRequest(BaseModel):
    name: Optional[str] = None
    instructions: Optional[str] = None
    description: Optional[str] = None
    model: Optional[str] = None
    tools: List[str] = Field(default_factory=list)
    category: str = "ORGANIZATIONAL"
    assistant_id: Optional[str] = None


class FunctionToolSpec(BaseModel):
    name: str
    description: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)


class CreateFunctionAssistantRequest(BaseModel):
    name: str
    instructions: Optional[str] = None
    description: Optional[str] = None
    model: Optional[str] = None
    tools: List[FunctionToolSpec]
    category: str = "ORGANIZATIONAL"


class UpdateAssistantRequest(BaseModel):
    name: Optional[str] = None
    instructions: Optional[str] = None
    description: Optional[str] = None
    model: Optional[str] = None
    category: Optional[str] = None
    functions: Optional[List[FunctionToolSpec]] = None


class AssistantResponse(BaseModel):
    message: str
    assistant: Dict[str, Any]


class AssistantListResponse(BaseModel):
    assistants: List[Dict[str, Any]]
    total: int


class FunctionDefinitionRequest(BaseModel):
    name: str
    definition: str


class ValidateFunctionRequest(BaseModel):
    definition: str
    name: str = "function"
    parameters: Optional[Dict[str, Any]] = None


class IntegrationServiceRequest(BaseModel):
    slug: str
    name: Optional[str] = None
    base_url: str = ""


class IntegrationApiRequest(BaseModel):
    service_id: str
    api_endpoint: str
    method: str = "GET"


class CredentialsRequest(BaseModel):
    service_id: str
    credentials: Dict[str, Any]


class CreateUserRequest(BaseModel):
    fname: str = Field(min_length=1, max_length=50)
    lname: Optional[str] = Field(default=None, max_length=50)
    email: str
    role: str = "user"
    maxusertokens: int = 5000


class EstimateRequest(BaseModel):
    input_text: str
    output: Any = ""
    model: str
    provider: str = "openai"


class EstimateResponse(BaseModel):
    input_tokens: int
    output_tokens: int
    total_tokens: int
    input_price: float
    output_price: float
    cost: float
