"""
App layer: HTTP 서버 (FastAPI).

역할:
- 폴더/이미지 API, 업로드 replace 정책, ZIP 다운로드
- StoreError → HTTP 상태 코드 변환
- ⚠️ 저장소 정합성 로직 없음 (core에 위임)
"""
