"""Core module exports

媒体流水线的基础模块，不包含业务流程。

主要模块：
- models: 上传、策略、描述符及各操作参数类型
- errors: 异常体系与错误类型枚举
- ffmpeg: ffprobe/ffmpeg 子进程封装（MediaTool 协议）
"""
