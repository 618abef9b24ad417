"""模型代理端点请求/响应模型。"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ProxyCompletionRequest(BaseModel):
    # 缺失字段由路由返回 400（与旧版 Express 代理的行为一致），这里不设为必填
    prompt: str | None = Field(None, description="发送给模型的提示词")
    model: str | None = Field(None, description="模型标识，只接受服务端配置的模型")


class ProxyCompletionResponse(BaseModel):
    content: str
