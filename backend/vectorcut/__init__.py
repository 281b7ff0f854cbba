"""
vectorcut - 图像/提示词 → 激光切割矢量文件（SVG/DXF）流水线

模块结构：
- config/      运行期配置与机型尺寸表
- models/      数据模型定义
- adapters/    外部工具适配（ImageMagick / potrace / Inkscape）
- svg/         SVG 结构化读写
- compositor/  设计稿与手机壳模板合成
- pipeline/    流水线编排与任务管理
- services/    图像生成服务客户端
- cli          命令行入口
"""

__version__ = "0.1.0"
